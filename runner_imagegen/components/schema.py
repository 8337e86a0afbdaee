"""Pydantic models for declarative recipe files.

A recipe file lists the components of an image in build order, plus the
builder options. Each entry is either a custom component (name, commands,
assets, docker commands) or a reference to a built-in component.

Example (YAML)::

    options:
      os: linux-ubuntu
      architecture: arm64
      rebuild_interval: P7D
    components:
      - builtin: required_packages
      - builtin: runner_user
      - name: tools
        commands:
          - apt-get install -y git
        assets:
          - source: files/motd
            target: /etc/motd
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from runner_imagegen.components import builtin
from runner_imagegen.components.base import COMPONENT_NAME_PATTERN, ImageComponent
from runner_imagegen.config import BuilderOptions
from runner_imagegen.types import AssetDescriptor

BuiltinName = Literal["required_packages", "runner_user", "environment_variables"]


class AssetSchema(BaseModel):
    """Schema for an asset copied into the image.

    Attributes:
        source: Local path (relative to the recipe file or absolute).
        target: Destination path in the image (must start with /).
    """

    model_config = ConfigDict(extra="forbid")

    source: str = Field(description="Local file or directory")
    target: str = Field(description="Destination path in image (must start with /)")

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        """Validate target is an absolute path."""
        if not v.startswith("/"):
            raise ValueError("target must start with '/'")
        return v


class ComponentSchema(BaseModel):
    """Schema for one component entry.

    Exactly one of ``name`` (custom component) or ``builtin`` is required.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    builtin: BuiltinName | None = None
    commands: list[str] = Field(default_factory=list)
    assets: list[AssetSchema] = Field(default_factory=list)
    docker_commands: list[str] = Field(default_factory=list)
    variables: dict[str, str] = Field(
        default_factory=dict,
        description="Variables for the environment_variables built-in",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        """Validate name is usable in file names."""
        if v is not None and not COMPONENT_NAME_PATTERN.match(v):
            raise ValueError(
                f"name must match {COMPONENT_NAME_PATTERN.pattern}, got '{v}'"
            )
        return v

    @model_validator(mode="after")
    def validate_kind(self) -> ComponentSchema:
        """Require exactly one of name or builtin."""
        if (self.name is None) == (self.builtin is None):
            raise ValueError("exactly one of 'name' or 'builtin' must be set")
        if self.builtin is not None and (
            self.commands or self.assets or self.docker_commands
        ):
            raise ValueError("built-in components take no commands or assets")
        return self

    def to_component(self, base_path: Path | None = None) -> ImageComponent:
        """Create the component described by this entry.

        Args:
            base_path: Directory relative asset sources are resolved against.

        Returns:
            An ImageComponent.
        """
        if self.builtin == "required_packages":
            return builtin.required_packages()
        if self.builtin == "runner_user":
            return builtin.runner_user()
        if self.builtin == "environment_variables":
            return builtin.environment_variables(self.variables)

        assets = []
        for asset in self.assets:
            source = Path(asset.source)
            if base_path is not None and not source.is_absolute():
                source = base_path / source
            assets.append(AssetDescriptor(source=str(source), target=asset.target))

        return builtin.custom(
            name=str(self.name),
            commands=self.commands,
            assets=assets,
            docker_commands=self.docker_commands,
        )


class RecipeFileSchema(BaseModel):
    """Schema for a complete recipe file.

    Attributes:
        options: Builder options.
        template: Optional Dockerfile template (default template if omitted).
        components: Components in build order.
    """

    model_config = ConfigDict(extra="forbid")

    options: BuilderOptions = Field(default_factory=BuilderOptions)
    template: str | None = None
    components: list[ComponentSchema] = Field(default_factory=list)

    def to_components(self, base_path: Path | None = None) -> list[ImageComponent]:
        """Create all components in order."""
        return [c.to_component(base_path) for c in self.components]


__all__ = ["AssetSchema", "BuiltinName", "ComponentSchema", "RecipeFileSchema"]
