"""Schema and parsing for user-submitted run configs."""

from .authoring import (
    AuthoringConfig,
    ConfigParseError,
    config_to_text,
    parse_config_text,
    schema_error_details,
    validate_config,
)

__all__ = [
    "AuthoringConfig",
    "ConfigParseError",
    "parse_config_text",
    "validate_config",
    "schema_error_details",
    "config_to_text",
]
