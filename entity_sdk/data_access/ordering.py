# entity_sdk/data_access/ordering.py
"""
Helpers that know how a listing is ordered and how to read the pivot value
out of an entity.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from entity_sdk.exceptions import MalformedResponseError, UnsuitableForOrderedFetchError
from entity_sdk.schemas.pagination import Entity, OrderField

logger = logging.getLogger("entity_sdk.data_access.ordering")

DEFAULT_ORDER_FIELDS: Dict[str, OrderField] = {
    # Profile and subprofile listings are ordered by ID unless told otherwise.
    "profiles": OrderField(field="ID", unique=True),
}

# Names that are entity properties; everything else lives in entity['fields'].
ENTITY_PROPERTIES = ("id", "modified")


def normalize_order(value: Any) -> str:
    if isinstance(value, str) and value.lower() in ("desc", "descending"):
        return "desc"
    return "asc"


def resolve_order_field(
    resource: str,
    parameters: Mapping[str, Any],
    order_fields: Optional[Mapping[str, OrderField]] = None,
) -> OrderField:
    """
    Returns the field the current query is ordered by and can be filtered on.

    An explicit 'orderby' wins over the configured default for the resource.
    Uniqueness is only assumed if 'orderby' names the default field itself.
    """
    if order_fields is None:
        order_fields = DEFAULT_ORDER_FIELDS
    default: Optional[OrderField] = None
    resource_lower = (resource or "").lower()
    for substring, order_field in order_fields.items():
        # Substring match: the store accepts extra trailing path parts.
        if substring.lower() in resource_lower:
            default = order_field
            break

    orderby = parameters.get("orderby")
    order = parameters.get("order")
    if orderby:
        if default is not None and str(orderby).lower() == default.field.lower():
            field, unique = default.field, default.unique
            order = order or default.order
        else:
            field, unique = str(orderby), False
    elif default is not None:
        field, unique = default.field, default.unique
        order = order or default.order
    else:
        raise UnsuitableForOrderedFetchError(
            "The current API resource/query/configuration is not suitable for querying entities in an 'ordered' way."
        )
    return OrderField(field=field, unique=unique, order=normalize_order(order))


def get_entity_id(entity: Entity) -> Any:
    """Some resources use 'ID', some 'id'."""
    entity_id = entity.get("ID")
    if entity_id in (None, ""):
        entity_id = entity.get("id")
    return entity_id


def _get_case_insensitive(values: Mapping[str, Any], name: str) -> Any:
    if name in values:
        return values[name]
    lowered = name.lower()
    for key, value in values.items():
        if key.lower() == lowered:
            return value
    raise KeyError(name)


def get_entity_value(entity: Entity, field_name: str) -> Any:
    """
    Reads a property or field value from an entity, tolerating mis-cased names.

    :raises MalformedResponseError: the entity has no such property / field.
    """
    if field_name.lower() in ENTITY_PROPERTIES:
        try:
            value = _get_case_insensitive(entity, field_name)
        except KeyError:
            raise MalformedResponseError(f"Entity contains no '{field_name}' property.") from None
        kind = "property"
    else:
        fields = entity.get("fields")
        source = fields if isinstance(fields, Mapping) else entity
        try:
            value = _get_case_insensitive(source, field_name)
        except KeyError:
            raise MalformedResponseError(f"Entity contains no '{field_name}' field.") from None
        kind = "field"
    # A null value cannot be compared or filtered on.
    if value is None:
        raise MalformedResponseError(f"Entity contains no '{field_name}' {kind}.")
    return value


def boundary_run(entities: List[Entity], field_name: str) -> List[Entity]:
    """
    Returns the maximal run of entities at the end of the batch sharing the
    last entity's value for the field, in batch order.
    """
    if not entities:
        return []
    last_value = get_entity_value(entities[-1], field_name)
    index = len(entities) - 1
    while index > 0 and get_entity_value(entities[index - 1], field_name) == last_value:
        index -= 1
    return entities[index:]
