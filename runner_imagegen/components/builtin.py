"""Built-in image components.

`CustomComponent` is the general-purpose component: a fixed list of
assets, commands and docker commands. The factory functions below return
components every runner image typically needs.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from runner_imagegen.components.base import (
    validate_component_name,
    validate_single_line,
)
from runner_imagegen.errors import UNSUPPORTED_PLATFORM, ConfigurationError
from runner_imagegen.types import Architecture, AssetDescriptor, Os


@dataclass(frozen=True)
class CustomComponent:
    """Component with a fixed contribution for every platform.

    Attributes:
        name: Component name, used to namespace generated files.
        commands: Shell commands run inside the image.
        assets: Files or directories copied into the image.
        docker_commands: Dockerfile directives appended verbatim.
    """

    name: str
    commands: tuple[str, ...] = ()
    assets: tuple[AssetDescriptor, ...] = ()
    docker_commands: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_component_name(self.name)

    def get_assets(self, os: Os, arch: Architecture) -> list[AssetDescriptor]:
        return list(self.assets)

    def get_commands(self, os: Os, arch: Architecture) -> list[str]:
        return list(self.commands)

    def get_docker_commands(self, os: Os, arch: Architecture) -> list[str]:
        return list(self.docker_commands)


@dataclass(frozen=True)
class _PlatformComponent:
    """Component whose commands are looked up by OS."""

    name: str
    commands_by_os: Mapping[Os, tuple[str, ...]] = field(default_factory=dict)

    def get_assets(self, os: Os, arch: Architecture) -> list[AssetDescriptor]:
        return []

    def get_commands(self, os: Os, arch: Architecture) -> list[str]:
        if os not in self.commands_by_os:
            raise ConfigurationError(
                f"Component {self.name} does not support {os.value}",
                code=UNSUPPORTED_PLATFORM,
            )
        return list(self.commands_by_os[os])

    def get_docker_commands(self, os: Os, arch: Architecture) -> list[str]:
        return []


def custom(
    name: str,
    commands: Sequence[str] = (),
    assets: Sequence[AssetDescriptor] = (),
    docker_commands: Sequence[str] = (),
) -> CustomComponent:
    """Create a custom component from plain lists."""
    return CustomComponent(
        name=name,
        commands=tuple(commands),
        assets=tuple(assets),
        docker_commands=tuple(docker_commands),
    )


def required_packages() -> _PlatformComponent:
    """Packages the runner and the build scripts rely on."""
    return _PlatformComponent(
        name="RequiredPackages",
        commands_by_os={
            Os.LINUX_UBUNTU: (
                "apt-get update",
                "DEBIAN_FRONTEND=noninteractive apt-get upgrade -y",
                "DEBIAN_FRONTEND=noninteractive apt-get install -y curl sudo jq bash "
                "zip unzip iptables software-properties-common ca-certificates",
            ),
            Os.LINUX_AMAZON_2: (
                "yum update -y",
                "yum install -y jq tar gzip bzip2 which binutils zip unzip sudo "
                "shadow-utils",
            ),
            Os.LINUX_AMAZON_2023: (
                "dnf upgrade -y",
                "dnf install -y jq tar gzip bzip2 which binutils zip unzip sudo "
                "shadow-utils findutils",
            ),
            Os.WINDOWS: (),
        },
    )


def runner_user() -> _PlatformComponent:
    """Unprivileged `runner` user with passwordless sudo."""
    sudoers = 'echo "%runner   ALL=(ALL:ALL) NOPASSWD: ALL" > /etc/sudoers.d/runner'
    amazon = (
        "/usr/sbin/groupadd runner",
        "/usr/sbin/useradd --system --shell /usr/sbin/nologin "
        "--home-dir /home/runner --gid runner runner",
        "mkdir -p /home/runner",
        "chown runner /home/runner",
        sudoers,
    )
    return _PlatformComponent(
        name="RunnerUser",
        commands_by_os={
            Os.LINUX_UBUNTU: (
                "addgroup runner",
                "adduser --system --disabled-password --home /home/runner "
                "--ingroup runner runner",
                sudoers,
            ),
            Os.LINUX_AMAZON_2: amazon,
            Os.LINUX_AMAZON_2023: amazon,
            Os.WINDOWS: (),
        },
    )


def environment_variables(variables: Mapping[str, str]) -> CustomComponent:
    """Environment variables baked into the image with ENV directives.

    Variables keep their given order so the rendered directives are stable.

    Raises:
        ConfigurationError: If a name or value spans more than one line.
    """
    directives = []
    for key, value in variables.items():
        validate_single_line(key, "Environment variable name")
        validate_single_line(value, f"Environment variable {key}")
        directives.append(f"ENV {key}={shlex.quote(value)}")
    return CustomComponent(
        name="EnvironmentVariables", docker_commands=tuple(directives)
    )


__all__ = [
    "CustomComponent",
    "custom",
    "environment_variables",
    "required_packages",
    "runner_user",
]
