"""Component descriptor protocol.

A component contributes three things to an image, each parameterized by
target OS and architecture:

- assets: local files or directories copied into the image
- commands: shell commands run inside the image during the build
- docker commands: raw Dockerfile directives appended verbatim

Components must be side-effect free when queried. Uploading assets is
done by the assembler through an explicit staging collaborator.
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from runner_imagegen.errors import INVALID_COMPONENT, ConfigurationError
from runner_imagegen.types import Architecture, AssetDescriptor, Os

# Component names end up in file names and shell words
COMPONENT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")


@runtime_checkable
class ImageComponent(Protocol):
    """Contract every pluggable image component satisfies."""

    @property
    def name(self) -> str: ...

    def get_assets(self, os: Os, arch: Architecture) -> list[AssetDescriptor]: ...

    def get_commands(self, os: Os, arch: Architecture) -> list[str]: ...

    def get_docker_commands(self, os: Os, arch: Architecture) -> list[str]: ...


def validate_component_name(name: str) -> str:
    """Check that a component name is usable as a file name fragment.

    Args:
        name: Component name.

    Returns:
        The name, unchanged.

    Raises:
        ConfigurationError: If the name is empty or has unsafe characters.
    """
    if not name or not COMPONENT_NAME_PATTERN.match(name):
        raise ConfigurationError(
            f"Invalid component name {name!r}: use letters, digits, '_', '.' or '-'",
            code=INVALID_COMPONENT,
        )
    return name


def validate_single_line(value: str, what: str) -> str:
    """Check that a value rendered into one Dockerfile line stays on it.

    Args:
        value: Text placed on a single Dockerfile line.
        what: Description of the value for the error message.

    Returns:
        The value, unchanged.

    Raises:
        ConfigurationError: If the value contains a line break.
    """
    if "\n" in value or "\r" in value:
        raise ConfigurationError(
            f"{what} must not contain line breaks: {value!r}",
            code=INVALID_COMPONENT,
        )
    return value


__all__ = [
    "COMPONENT_NAME_PATTERN",
    "ImageComponent",
    "validate_component_name",
    "validate_single_line",
]
