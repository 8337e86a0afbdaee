"""Build script assembly.

This module handles:
- Walking the ordered component list
- Staging component assets through the asset staging collaborator
- Writing per-component install scripts
- Rendering the Dockerfile from a template

The result is a linear list of shell commands that, run in an empty
directory, leaves a Dockerfile and everything it copies in place for
`docker build`. Every file generated for component ``i`` named ``n`` is
prefixed with ``asset{i}-{n}-`` or ``component{i}-{n}`` so components
never collide, even when they share a name.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from runner_imagegen.components.base import (
    ImageComponent,
    validate_component_name,
    validate_single_line,
)
from runner_imagegen.errors import (
    INVALID_COMPONENT,
    MISSING_PLACEHOLDER,
    UNKNOWN_ASSET_TYPE,
    UNSUPPORTED_PLATFORM,
    ConfigurationError,
)
from runner_imagegen.types import (
    Architecture,
    AssetDescriptor,
    AssetKind,
    Os,
    StagedAsset,
)

logger = logging.getLogger(__name__)

HEREDOC_DELIMITER = "EOFRUNNERIMAGEGENDOCKERFILE"
SCRIPT_HEADER = "#!/bin/bash\nset -exuo pipefail\n"

PARENT_IMAGE_PLACEHOLDER = "{{{ imagebuilder:parentImage }}}"
ENVIRONMENTS_PLACEHOLDER = "{{{ imagebuilder:environments }}}"
COMPONENTS_PLACEHOLDER = "{{{ imagebuilder:components }}}"
REQUIRED_PLACEHOLDERS = (
    PARENT_IMAGE_PLACEHOLDER,
    ENVIRONMENTS_PLACEHOLDER,
    COMPONENTS_PLACEHOLDER,
)

DEFAULT_DOCKERFILE_TEMPLATE = (
    f"FROM {PARENT_IMAGE_PLACEHOLDER}\n"
    "VOLUME /var/lib/docker\n"
    f"{ENVIRONMENTS_PLACEHOLDER}\n"
    f"{COMPONENTS_PLACEHOLDER}\n"
)


class AssetStager(Protocol):
    """Uploads local assets somewhere the build executor can fetch them."""

    def stage(self, path: str, name: str, principal: str | None) -> StagedAsset:
        """Upload ``path`` under ``name`` and grant ``principal`` read access."""
        ...


@dataclass(frozen=True)
class AssembledScript:
    """Output of the assembler.

    Attributes:
        commands: Shell commands, in order, for the build phase.
        dockerfile: Rendered Dockerfile text.
    """

    commands: tuple[str, ...]
    dockerfile: str


@dataclass(frozen=True)
class _ComponentPlan:
    index: int
    name: str
    assets: tuple[tuple[AssetDescriptor, AssetKind], ...]
    commands: tuple[str, ...]
    docker_commands: tuple[str, ...]


def validate_dockerfile_template(template: str) -> str:
    """Check that a Dockerfile template has every required placeholder.

    Raises:
        ConfigurationError: If a placeholder is missing.
    """
    missing = [p for p in REQUIRED_PLACEHOLDERS if p not in template]
    if missing:
        raise ConfigurationError(
            f"Dockerfile template is missing placeholders: {', '.join(missing)}",
            code=MISSING_PLACEHOLDER,
        )
    return template


def render_dockerfile(
    template: str,
    parent_image: str,
    environment_lines: Sequence[str],
    component_lines: Sequence[str],
) -> str:
    """Render a Dockerfile template.

    A line holding only the environments or components placeholder is
    replaced by the given lines, or dropped when there are none, so the
    result never contains blank directive lines from empty contributions.
    """
    validate_dockerfile_template(template)
    blocks = {
        ENVIRONMENTS_PLACEHOLDER: environment_lines,
        COMPONENTS_PLACEHOLDER: component_lines,
    }

    rendered: list[str] = []
    for line in template.splitlines():
        stripped = line.strip()
        if stripped in blocks:
            rendered.extend(blocks[stripped])
        else:
            rendered.append(line.replace(PARENT_IMAGE_PLACEHOLDER, parent_image))
    return "\n".join(rendered) + "\n"


def heredoc(path: str, content: str) -> str:
    """Compose a command writing ``content`` to ``path`` without expansion."""
    return f"cat > {path} <<'{HEREDOC_DELIMITER}'\n{content}\n{HEREDOC_DELIMITER}"


def local_asset_kind(source: str) -> AssetKind:
    """Determine how a local asset will be staged.

    Raises:
        ConfigurationError: If the path is neither a file nor a directory.
    """
    path = Path(source)
    if path.is_file():
        return AssetKind.FILE
    if path.is_dir():
        return AssetKind.ZIP
    raise ConfigurationError(
        f"Unknown asset type: {source} is neither a file nor a directory",
        code=UNKNOWN_ASSET_TYPE,
    )


def _check_heredoc_safe(text: str, what: str) -> None:
    if HEREDOC_DELIMITER in text.splitlines():
        raise ConfigurationError(
            f"{what} contains the reserved line {HEREDOC_DELIMITER}",
            code=INVALID_COMPONENT,
        )


def _plan_components(
    components: Sequence[ImageComponent],
    os: Os,
    arch: Architecture,
) -> list[_ComponentPlan]:
    """Query and validate every component before anything is staged."""
    plans = []
    for i, component in enumerate(components):
        name = validate_component_name(component.name)
        descriptors = component.get_assets(os, arch)

        if descriptors and os is Os.WINDOWS:
            raise ConfigurationError(
                f"Can't add assets of component {name}: "
                "Windows Docker images cannot be built by this executor",
                code=UNSUPPORTED_PLATFORM,
            )

        for d in descriptors:
            validate_single_line(d.target, f"Asset target of component {name}")
        assets = tuple((d, local_asset_kind(d.source)) for d in descriptors)
        commands = tuple(component.get_commands(os, arch))
        docker_commands = tuple(
            c for c in component.get_docker_commands(os, arch) if c.strip()
        )
        for command in commands:
            _check_heredoc_safe(command, f"Component {name}")
        for command in docker_commands:
            _check_heredoc_safe(command, f"Component {name}")

        plans.append(
            _ComponentPlan(
                index=i,
                name=name,
                assets=assets,
                commands=commands,
                docker_commands=docker_commands,
            )
        )
    return plans


def _staged_kind(staged: StagedAsset, source: str) -> AssetKind:
    try:
        return AssetKind(staged.kind)
    except ValueError:
        raise ConfigurationError(
            f"Unknown asset type {staged.kind!r} for {source}",
            code=UNKNOWN_ASSET_TYPE,
        ) from None


def assemble_build_script(
    components: Sequence[ImageComponent],
    os: Os,
    arch: Architecture,
    base_image: str,
    stager: AssetStager,
    template: str = DEFAULT_DOCKERFILE_TEMPLATE,
    environment: Mapping[str, str] | None = None,
    principal: str | None = None,
) -> AssembledScript:
    """Assemble the build commands and Dockerfile for a component list.

    Every component is queried and validated before the first asset is
    staged, so a configuration error never leaves a partial assembly
    behind. Values rendered into a single Dockerfile line (base image,
    environment, asset targets) must not contain line breaks, and nothing
    may contain the heredoc delimiter as a line of its own.

    Args:
        components: Components in build order.
        os: Target OS.
        arch: Target architecture.
        base_image: Parent image of the Dockerfile.
        stager: Asset staging collaborator.
        template: Dockerfile template.
        environment: ENV directives for the image, in order.
        principal: Executor identity granted read access to staged assets.

    Returns:
        AssembledScript with commands and Dockerfile.

    Raises:
        ConfigurationError: On unsupported platform, unknown asset type,
            invalid component or invalid template.
    """
    validate_dockerfile_template(template)
    _check_heredoc_safe(template, "Dockerfile template")
    validate_single_line(base_image, "Base image")
    _check_heredoc_safe(base_image, "Base image")
    environment = dict(environment or {})
    for key, value in environment.items():
        validate_single_line(key, "Environment variable name")
        validate_single_line(value, f"Environment variable {key}")
    plans = _plan_components(components, os, arch)

    commands: list[str] = []
    directives: list[str] = []

    for plan in plans:
        i, name = plan.index, plan.name

        for j, (descriptor, kind) in enumerate(plan.assets):
            asset_name = f"asset{i}-{name}-{j}"
            staged = stager.stage(
                descriptor.source, f"Component {i} {name} Asset {j}", principal
            )
            staged_kind = _staged_kind(staged, descriptor.source)
            if staged_kind is not kind:
                logger.warning(
                    "Asset %s staged as %s, expected %s",
                    descriptor.source,
                    staged_kind.value,
                    kind.value,
                )

            if staged_kind is AssetKind.FILE:
                commands.append(f"aws s3 cp {staged.url} {asset_name}")
            else:
                commands.append(f"aws s3 cp {staged.url} {asset_name}.zip")
                commands.append(f'unzip {asset_name}.zip -d "{asset_name}"')
            directives.append(f"COPY {asset_name} {descriptor.target}")

        script_name = f"component{i}-{name}.sh"
        script = SCRIPT_HEADER + "\n".join(plan.commands)
        commands.append(heredoc(script_name, script))
        commands.append(f"chmod +x {script_name}")
        directives.append(f"COPY {script_name} /tmp")
        directives.append(f"RUN /tmp/{script_name}")

        directives.extend(plan.docker_commands)

        logger.debug(
            "Assembled component %d %s (%d assets, %d commands)",
            i,
            name,
            len(plan.assets),
            len(plan.commands),
        )

    environment_lines = [f"ENV {k}={shlex.quote(v)}" for k, v in environment.items()]
    dockerfile = render_dockerfile(template, base_image, environment_lines, directives)
    _check_heredoc_safe(dockerfile, "Dockerfile")
    commands.append(heredoc("Dockerfile", dockerfile.rstrip("\n")))

    return AssembledScript(commands=tuple(commands), dockerfile=dockerfile)


__all__ = [
    "COMPONENTS_PLACEHOLDER",
    "DEFAULT_DOCKERFILE_TEMPLATE",
    "ENVIRONMENTS_PLACEHOLDER",
    "HEREDOC_DELIMITER",
    "PARENT_IMAGE_PLACEHOLDER",
    "REQUIRED_PLACEHOLDERS",
    "SCRIPT_HEADER",
    "AssembledScript",
    "AssetStager",
    "assemble_build_script",
    "heredoc",
    "local_asset_kind",
    "render_dockerfile",
    "validate_dockerfile_template",
]
