# entity_sdk/config.py
from typing import Dict

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)
from pydantic import Field

from entity_sdk.data_access.ordering import DEFAULT_ORDER_FIELDS
from entity_sdk.schemas.pagination import OrderField


class EntityApiSettings(BaseSettings):
    API_BASE_URL: str = "https://api.copernica.com"
    API_VERSION: int = 2
    ACCESS_TOKEN: str = ""
    REQUEST_TIMEOUT: float = Field(
        10.0, description="Timeout for a single request to the Entity Store, in seconds."
    )
    MAX_BATCH_LIMIT: int = Field(
        1000,
        gt=0,
        description="Highest 'limit' ever sent; larger values are capped before the request.",
    )
    LOGGING_LEVEL: str = Field(
        "INFO",
        json_schema_extra={"examples": ["DEBUG", "INFO", "WARNING", "ERROR"]}
    )
    # Resource substring -> field the store orders that resource by when no
    # 'orderby' is given.
    DEFAULT_ORDER_FIELDS: Dict[str, OrderField] = Field(
        default_factory=lambda: dict(DEFAULT_ORDER_FIELDS)
    )

    model_config = SettingsConfigDict(
        env_prefix="ENTITY_API_",
        extra='ignore',
    )
