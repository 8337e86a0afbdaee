"""Shared type definitions for runner_imagegen.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum

# Literal value used for correlation ids and the response URL when a build
# is not part of a provisioning transaction (e.g. a scheduled rebuild).
UNSPECIFIED = "unspecified"


class Os(str, Enum):
    """Target operating system of the image."""

    LINUX_UBUNTU = "linux-ubuntu"
    LINUX_AMAZON_2 = "linux-amazon-2"
    LINUX_AMAZON_2023 = "linux-amazon-2023"
    WINDOWS = "windows"

    @property
    def is_linux(self) -> bool:
        """Whether this is one of the Linux flavours."""
        return self is not Os.WINDOWS


class Architecture(str, Enum):
    """Target CPU architecture of the image."""

    X86_64 = "x86_64"
    ARM64 = "arm64"


class BuildStatus(str, Enum):
    """Status of a build invocation."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TriggerSource(str, Enum):
    """What started a build invocation."""

    PROVISIONING = "provisioning"
    SCHEDULE = "schedule"


class AssetKind(str, Enum):
    """Shape of a staged asset."""

    FILE = "file"
    ZIP = "zip"


@dataclass(frozen=True)
class AssetDescriptor:
    """A local file or directory to copy into the image.

    Attributes:
        source: Local path of the file or directory.
        target: Absolute destination path inside the image.
    """

    source: str
    target: str


@dataclass(frozen=True)
class StagedAsset:
    """Remote reference to an asset uploaded by the staging collaborator.

    Attributes:
        url: URL the build executor can fetch (e.g. ``s3://bucket/key``).
        kind: Whether the asset is a single file or a zipped directory.
    """

    url: str
    kind: AssetKind | str


__all__ = [
    "UNSPECIFIED",
    "Architecture",
    "AssetDescriptor",
    "AssetKind",
    "BuildStatus",
    "Os",
    "StagedAsset",
    "TriggerSource",
]
