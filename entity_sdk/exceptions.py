# entity_sdk/exceptions.py


class EntitySDKError(Exception):
    """
    Base class for every exception raised by entity_sdk.
    Lets callers catch all SDK errors with a single `except EntitySDKError`.
    """

    pass


class ConfigurationError(EntitySDKError):
    """
    Raised for invalid SDK settings or collaborators wired up incorrectly.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"Configuration Error: {self.message}"


class ServiceCommunicationError(EntitySDKError):
    """
    Raised when talking to the remote Entity Store fails: network errors,
    timeouts, unexpected HTTP statuses or an error structure in the body.
    Pagers pass it through to the caller unchanged.
    """

    def __init__(
        self, message: str, status_code: int | None = None, url: str | None = None
    ):
        """
        :param message: Main error message.
        :param status_code: HTTP status code of the response, if any.
        :param url: URL that was being accessed (without the access token).
        """
        self.message = message
        self.status_code = status_code
        self.url = url
        full_message = "Service Communication Error"
        if self.url:
            full_message += f" accessing {self.url}"
        if self.status_code:
            full_message += f" (Status Code: {self.status_code})"
        full_message += f": {self.message}"
        super().__init__(full_message)


class MalformedResponseError(EntitySDKError):
    """
    The store answered, but the body (page metadata or an entity in it)
    does not have the structure we rely on.
    """

    pass


class EntityRemovedError(EntitySDKError):
    """A single-entity request returned an entity that is marked as removed."""

    pass


class PaginationError(EntitySDKError):
    """Base class for errors raised by the batched fetching engine."""

    pass


class InvalidParametersError(PaginationError, ValueError):
    """
    A continuation call tried to change a parameter that determines which
    entities belong to the walk (start, fields, orderby, order).
    """

    def __init__(self, message: str = "Invalid parameters passed."):
        super().__init__(message)


class UnsuitableForOrderedFetchError(PaginationError):
    """No pivot field can be derived for the current resource / query."""

    pass


class AmbiguousBoundaryError(PaginationError):
    """
    The previous batch consisted of entities that all share the same pivot
    value, so no watermark can be placed after it.
    """

    pass


class UnexpectedOrderError(PaginationError):
    """The store returned entities in an order that contradicts the pivot."""

    pass


class InvalidStateError(PaginationError):
    """
    Pagination state is missing or malformed: a state blob that does not
    validate, or a continuation call before any listing was started.
    """

    pass


class StructuralStateMismatchError(InvalidStateError):
    """
    The (imported) state lacks data that the requested operation needs,
    e.g. ordered fetching after the last batch was left out of the export.
    """

    pass
