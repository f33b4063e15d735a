"""Client-side cache for a remote configuration service."""

from configcache.binding.materializer import bindings_for, config_field
from configcache.domain.setting import Setting
from configcache.errors import (
    ConfigServiceError,
    ConversionError,
    FetchError,
    MaterializeError,
    MissingKeyError,
    UnsupportedTypeError,
)
from configcache.manager import ConfigServiceManager

__all__ = [
    "ConfigServiceManager",
    "Setting",
    "config_field",
    "bindings_for",
    "ConfigServiceError",
    "FetchError",
    "MaterializeError",
    "MissingKeyError",
    "ConversionError",
    "UnsupportedTypeError",
]
