"""Build job definitions.

This module handles:
- Default build image and base image selection per platform
- Composing the three-phase build spec (pre-build, build, post-build)
- The build job definition handed to the executor backend

A job definition is a pure function of its inputs: composing it twice
from the same recipe and options gives equal objects and byte-identical
JSON.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from runner_imagegen.builds.assembler import AssembledScript
from runner_imagegen.builds.signal import (
    BUILD_LOG_PATH,
    DEFAULT_REASON_LIMIT,
    ENV_LOGICAL_RESOURCE_ID,
    ENV_REPO_ARN,
    ENV_REPO_URI,
    ENV_REQUEST_ID,
    ENV_RESPONSE_URL,
    ENV_STACK_ID,
    post_build_commands,
)
from runner_imagegen.config import NetworkPlacement
from runner_imagegen.errors import (
    UNSUPPORTED_ARCHITECTURE,
    UNSUPPORTED_PLATFORM,
    ConfigurationError,
)
from runner_imagegen.types import UNSPECIFIED, Architecture, Os


BUILDSPEC_VERSION = "0.2"
LOG_ENV_SCRIPT = "codebuild-log.sh"

# The executor only runs `docker build`, so the build image OS is irrelevant;
# only its architecture has to match the target.
DEFAULT_BUILD_IMAGES: dict[Architecture, str] = {
    Architecture.X86_64: "aws/codebuild/amazonlinux2-x86_64-standard:5.0",
    Architecture.ARM64: "aws/codebuild/amazonlinux2-aarch64-standard:3.0",
}

DEFAULT_BASE_IMAGES: dict[Os, str] = {
    Os.WINDOWS: "mcr.microsoft.com/windows/servercore:ltsc2019-amd64",
    Os.LINUX_UBUNTU: "public.ecr.aws/lts/ubuntu:22.04",
    Os.LINUX_AMAZON_2: "public.ecr.aws/amazonlinux/amazonlinux:2",
    Os.LINUX_AMAZON_2023: "public.ecr.aws/amazonlinux/amazonlinux:2023",
}

SOCI_ARCHITECTURES: dict[Architecture, str] = {
    Architecture.X86_64: "x86_64",
    Architecture.ARM64: "arm64",
}
SOCI_INDEXER_RELEASES = "https://github.com/CloudSnorkel/standalone-soci-indexer/releases"


def check_platform(os: Os) -> None:
    """Fail unless the executor can build container images for ``os``.

    Raises:
        ConfigurationError: For Windows, which cannot run `docker build`
            on this executor.
    """
    if os is Os.WINDOWS:
        raise ConfigurationError(
            "The build executor cannot build Windows Docker images",
            code=UNSUPPORTED_PLATFORM,
        )


def default_build_image(os: Os, arch: Architecture) -> str:
    """Select the executor build image for a platform.

    Raises:
        ConfigurationError: If the platform/architecture has no build image.
    """
    check_platform(os)
    if os.is_linux and arch in DEFAULT_BUILD_IMAGES:
        return DEFAULT_BUILD_IMAGES[arch]
    raise ConfigurationError(
        f"Unable to find a build image for {os.value}/{arch.value}",
        code=UNSUPPORTED_ARCHITECTURE,
    )


def default_base_image(os: Os) -> str:
    """Select the default parent image for a target OS.

    Raises:
        ConfigurationError: If the OS has no default base image.
    """
    try:
        return DEFAULT_BASE_IMAGES[os]
    except KeyError:
        raise ConfigurationError(
            f"OS {os} not supported for Docker images",
            code=UNSUPPORTED_PLATFORM,
        ) from None


def soci_arch(arch: Architecture) -> str:
    """Return the secondary index tool's download suffix for ``arch``.

    Raises:
        ConfigurationError: If the architecture is not supported.
    """
    try:
        return SOCI_ARCHITECTURES[arch]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported architecture for the build executor: {arch}",
            code=UNSUPPORTED_ARCHITECTURE,
        ) from None


def registry_host(repository_uri: str) -> str:
    """Return the registry host of a repository URI."""
    return repository_uri.split("/", 1)[0]


def secondary_index_command(arch: Architecture) -> str:
    """Best-effort command generating a lazy-loading index for the image.

    It runs after the completion signal and never fails the build.
    """
    return (
        '{ docker rmi "$REPO_URI" && '
        "LATEST_SOCI_VERSION=`curl -w \"%{redirect_url}\" -fsS "
        f'{SOCI_INDEXER_RELEASES}/latest | grep -oE "[^/]+$"` && '
        f"curl -fsSL {SOCI_INDEXER_RELEASES}/download/${{LATEST_SOCI_VERSION}}/"
        f"standalone-soci-indexer_Linux_{soci_arch(arch)}.tar.gz | tar xz && "
        './standalone-soci-indexer "$REPO_URI"; } '
        '|| echo "Secondary index generation failed, ignoring"'
    )


def compose_build_spec(
    script: AssembledScript,
    repository_arn: str,
    repository_uri: str,
    arch: Architecture,
    reason_limit: int = DEFAULT_REASON_LIMIT,
) -> dict[str, Any]:
    """Compose the three-phase build spec.

    Args:
        script: Assembled build commands.
        repository_arn: Registry repository ARN (the physical resource id).
        repository_uri: Registry repository URI to push to.
        arch: Target architecture.
        reason_limit: Maximum log bytes in the completion signal.

    Returns:
        Build spec as a dictionary.
    """
    host = registry_host(repository_uri)
    return {
        "version": BUILDSPEC_VERSION,
        "env": {
            "variables": {
                ENV_REPO_ARN: repository_arn,
                ENV_REPO_URI: repository_uri,
                ENV_STACK_ID: UNSPECIFIED,
                ENV_REQUEST_ID: UNSPECIFIED,
                ENV_LOGICAL_RESOURCE_ID: UNSPECIFIED,
                ENV_RESPONSE_URL: UNSPECIFIED,
                "BASH_ENV": LOG_ENV_SCRIPT,
            },
            "shell": "bash",
        },
        "phases": {
            "pre_build": {
                "commands": [
                    f'echo "exec > >(tee -a {BUILD_LOG_PATH}) 2>&1" > {LOG_ENV_SCRIPT}',
                    'aws ecr get-login-password --region "$AWS_DEFAULT_REGION" | '
                    f"docker login --username AWS --password-stdin {host}",
                ],
            },
            "build": {
                "commands": [
                    *script.commands,
                    'docker build --progress plain . -t "$REPO_URI"',
                    'docker push "$REPO_URI"',
                ],
            },
            "post_build": {
                "commands": [
                    *post_build_commands(reason_limit),
                    secondary_index_command(arch),
                ],
            },
        },
    }


@dataclass(frozen=True)
class BuildJobDefinition:
    """Everything the executor backend needs to create a build project.

    Attributes:
        name: Project name.
        description: Human-readable description.
        buildspec: Three-phase build spec.
        build_image: Image the executor runs the build spec in.
        compute_type: Compute profile.
        timeout_minutes: Executor-enforced timeout.
        network: Optional network placement.
        log_retention_days: Retention of the build log group.
        privileged: Whether the build needs a Docker daemon.
    """

    name: str
    description: str
    buildspec: Mapping[str, Any]
    build_image: str
    compute_type: str
    timeout_minutes: int
    network: NetworkPlacement | None = None
    log_retention_days: int = 30
    privileged: bool = True

    def buildspec_json(self) -> str:
        """Render the build spec as JSON, keeping phase and command order."""
        return json.dumps(self.buildspec, indent=2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "buildspec": dict(self.buildspec),
            "build_image": self.build_image,
            "compute_type": self.compute_type,
            "timeout_minutes": self.timeout_minutes,
            "network": self.network.model_dump(mode="json") if self.network else None,
            "log_retention_days": self.log_retention_days,
            "privileged": self.privileged,
        }


__all__ = [
    "BUILDSPEC_VERSION",
    "DEFAULT_BASE_IMAGES",
    "DEFAULT_BUILD_IMAGES",
    "SOCI_ARCHITECTURES",
    "BuildJobDefinition",
    "check_platform",
    "compose_build_spec",
    "default_base_image",
    "default_build_image",
    "registry_host",
    "secondary_index_command",
    "soci_arch",
]
