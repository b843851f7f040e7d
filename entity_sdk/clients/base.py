# entity_sdk/clients/base.py
import logging
import httpx
from typing import Any, Dict, List, Mapping, Optional, Tuple

from entity_sdk.exceptions import (
    EntityRemovedError,
    MalformedResponseError,
    ServiceCommunicationError,
)

logger = logging.getLogger("entity_sdk.clients.base")


def encode_parameters(parameters: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """
    Converts query parameters to the pairs the store expects: list values
    become repeated 'key[]=value' pairs, booleans 'true'/'false'.
    """
    encoded: List[Tuple[str, str]] = []
    for key, value in parameters.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            encoded.extend((f"{key}[]", _encode_value(item)) for item in value)
        else:
            encoded.append((key, _encode_value(value)))
    return encoded


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RestTransport:
    """
    HTTP client for the Entity Store REST API.
    Only GET requests are needed by the batched fetching engine.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str = "",
        api_version: int = 2,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url_str = str(base_url).rstrip("/")
        self.api_version = api_version
        self.api_base_url = f"{self.base_url_str}/v{self.api_version}"
        self.access_token = access_token

        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        logger.debug(f"RestTransport initialized for API base: {self.api_base_url}. Owns client: {self._owns_client}")

    async def _request(
        self,
        method: str,
        url: str,
        allowed_statuses: Optional[List[int]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        params = kwargs.pop("params", None) or []
        # The token is added here so it never ends up in log lines.
        logger.debug(f"Executing remote call: {method} {url}, Params: {params}")
        request_params = [*params, ("access_token", self.access_token)] if self.access_token else params
        try:
            response = await self._http_client.request(method, url, params=request_params, **kwargs)
            effective_allowed_statuses = allowed_statuses if allowed_statuses is not None else [200]
            if response.status_code not in effective_allowed_statuses:
                logger.warning(f"Remote call to {url} returned unexpected status: {response.status_code}. Allowed: {effective_allowed_statuses}. Response text: {response.text[:500]}")
                response.raise_for_status()
            logger.debug(f"Remote call to {url} successful. Status: {response.status_code}")
            return response
        except httpx.TimeoutException as e:
            raise ServiceCommunicationError(f"Timeout error accessing {url}: {e!s}", url=url) from e
        except httpx.RequestError as e:
            raise ServiceCommunicationError(f"Network error accessing {url}: {e!s}", url=url) from e
        except httpx.HTTPStatusError as e:
            detail_message = e.response.text
            try:
                error_json = e.response.json()
            except ValueError:
                error_json = None
            if isinstance(error_json, dict):
                error = error_json.get("error")
                if isinstance(error, dict) and isinstance(error.get("message"), str):
                    detail_message = error["message"]
                elif "detail" in error_json:
                    detail_message = str(error_json["detail"])
            raise ServiceCommunicationError(
                message=f"API request failed: {detail_message}", status_code=e.response.status_code, url=url
            ) from e

    async def get(self, resource: str, parameters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Executes a GET request and returns the decoded JSON object.

        :raises ServiceCommunicationError: transport failure, non-200 status or
            an 'error' structure in the response body.
        :raises MalformedResponseError: the body is not a JSON object.
        """
        if not resource or not isinstance(resource, str):
            raise ServiceCommunicationError("API request failed: Invalid method.", status_code=400)
        url = f"{self.api_base_url}/{resource.lstrip('/')}"
        params = encode_parameters(parameters or {})
        logger.info(f"Client GET: Fetching {url}")
        response = await self._request("GET", url, params=params, allowed_statuses=[200])

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response body from {url} is not valid JSON: \"{response.text[:200]}\".") from e
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Response body from {url} is not a JSON encoded object: {body!r:.200}.")

        if "error" in body:
            error = body["error"]
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                raise ServiceCommunicationError(f"API request failed: {error['message']}", status_code=response.status_code, url=url)
            raise ServiceCommunicationError(f"API request got unexpected response: {body!r:.500}", status_code=response.status_code, url=url)
        return body

    async def get_entity(
        self,
        resource: str,
        parameters: Optional[Mapping[str, Any]] = None,
        allow_removed: bool = False,
    ) -> Dict[str, Any]:
        """
        Executes a GET request that returns a single entity.

        :raises MalformedResponseError: the entity has no 'ID' / 'id'.
        :raises EntityRemovedError: the entity is marked as removed and
            allow_removed is False.
        """
        entity = await self.get(resource, parameters)
        if not entity.get("ID") and not entity.get("id"):
            raise MalformedResponseError(f"Entity returned from {resource} resource does not contain 'id'.")
        # Removed entities keep their structure, with the removal date in 'removed'.
        if entity.get("removed") and not allow_removed:
            raise EntityRemovedError(f"Entity returned from {resource} resource was removed {entity['removed']}.")
        return entity

    async def close(self) -> None:
        if self._owns_client and self._http_client:
            logger.info(f"Closing owned HTTP client for {self.api_base_url}")
            await self._http_client.aclose()
        elif not self._owns_client:
            logger.debug(f"HTTP client for {self.api_base_url} is managed externally, not closing.")
