# entity_sdk/clients/__init__.py
from .base import RestTransport, encode_parameters

__all__ = ["RestTransport", "encode_parameters"]
