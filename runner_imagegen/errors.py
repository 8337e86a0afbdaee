"""Error definitions for runner_imagegen.

Every error carries a stable ``code`` for programmatic handling.
Configuration errors are raised at synthesis time, before any remote
call is made. Build failures are never raised; they become a FAILED
completion signal instead.
"""

# Error code constants
UNSUPPORTED_PLATFORM = "unsupported_platform"
UNSUPPORTED_ARCHITECTURE = "unsupported_architecture"
UNSUPPORTED_IMAGE_TYPE = "unsupported_image_type"
UNKNOWN_ASSET_TYPE = "unknown_asset_type"
INVALID_COMPONENT = "invalid_component"
MISSING_PLACEHOLDER = "missing_placeholder"
INVALID_INTERVAL = "invalid_interval"
INVOCATION_NOT_FOUND = "invocation_not_found"


class ConfigurationError(Exception):
    """Raised when a builder cannot be synthesized from its configuration."""

    def __init__(self, message: str, code: str = "configuration_error") -> None:
        super().__init__(message)
        self.code = code


class BuildInvocationNotFoundError(Exception):
    """Raised when a build invocation record is not found."""

    def __init__(self, invocation_id: int, code: str = INVOCATION_NOT_FOUND) -> None:
        super().__init__(f"Build invocation not found: {invocation_id}")
        self.invocation_id = invocation_id
        self.code = code


__all__ = [
    "INVALID_COMPONENT",
    "INVALID_INTERVAL",
    "INVOCATION_NOT_FOUND",
    "MISSING_PLACEHOLDER",
    "UNKNOWN_ASSET_TYPE",
    "UNSUPPORTED_ARCHITECTURE",
    "UNSUPPORTED_IMAGE_TYPE",
    "UNSUPPORTED_PLATFORM",
    "BuildInvocationNotFoundError",
    "ConfigurationError",
]
