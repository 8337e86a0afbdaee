"""Tests for the components package.

Tests built-in components, the recipe file schemas and recipe loading.
"""

import json
from datetime import timedelta

import pytest
from pydantic import ValidationError

from runner_imagegen.components import ImageComponent
from runner_imagegen.components.base import validate_component_name
from runner_imagegen.components.builtin import (
    CustomComponent,
    _PlatformComponent,
    custom,
    environment_variables,
    required_packages,
    runner_user,
)
from runner_imagegen.components.io import load_recipe_file, read_recipe_data
from runner_imagegen.components.schema import ComponentSchema, RecipeFileSchema
from runner_imagegen.errors import (
    INVALID_COMPONENT,
    UNSUPPORTED_PLATFORM,
    ConfigurationError,
)
from runner_imagegen.types import Architecture, AssetDescriptor, Os

X64 = Architecture.X86_64


class TestComponentNames:
    """Tests for component name validation."""

    @pytest.mark.parametrize("name", ["tools", "Runner_User", "docker-ce.24"])
    def test_valid(self, name):
        assert validate_component_name(name) == name

    @pytest.mark.parametrize("name", ["", "has space", "a/b", "semi;colon", "$(x)"])
    def test_invalid(self, name):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_component_name(name)
        assert exc_info.value.code == INVALID_COMPONENT

    def test_custom_validates_name(self):
        with pytest.raises(ConfigurationError):
            custom("bad name")


class TestCustomComponent:
    """Tests for CustomComponent."""

    def test_contribution(self):
        asset = AssetDescriptor(source="files/motd", target="/etc/motd")
        component = custom(
            "tools",
            commands=["apt-get install -y git"],
            assets=[asset],
            docker_commands=["USER runner"],
        )

        assert isinstance(component, CustomComponent)
        assert isinstance(component, ImageComponent)
        assert component.get_commands(Os.LINUX_UBUNTU, X64) == ["apt-get install -y git"]
        assert component.get_assets(Os.LINUX_UBUNTU, X64) == [asset]
        assert component.get_docker_commands(Os.LINUX_UBUNTU, X64) == ["USER runner"]

    def test_queries_return_copies(self):
        """Callers cannot mutate the component through query results."""
        component = custom("tools", commands=["true"])

        component.get_commands(Os.LINUX_UBUNTU, X64).append("false")

        assert component.get_commands(Os.LINUX_UBUNTU, X64) == ["true"]


class TestBuiltinComponents:
    """Tests for built-in component factories."""

    def test_required_packages_per_os(self):
        component = required_packages()

        ubuntu = component.get_commands(Os.LINUX_UBUNTU, X64)
        amazon = component.get_commands(Os.LINUX_AMAZON_2, X64)
        assert ubuntu[0] == "apt-get update"
        assert amazon[0] == "yum update -y"
        assert component.get_commands(Os.WINDOWS, X64) == []
        assert component.get_assets(Os.LINUX_UBUNTU, X64) == []

    def test_runner_user(self):
        commands = runner_user().get_commands(Os.LINUX_AMAZON_2023, X64)

        assert commands[0] == "/usr/sbin/groupadd runner"
        assert "/etc/sudoers.d/runner" in commands[-1]

    def test_unsupported_os(self):
        component = _PlatformComponent("Partial", {Os.LINUX_UBUNTU: ("true",)})

        with pytest.raises(ConfigurationError) as exc_info:
            component.get_commands(Os.LINUX_AMAZON_2, X64)
        assert exc_info.value.code == UNSUPPORTED_PLATFORM

    def test_environment_variables(self):
        component = environment_variables(
            {"RUNNER_HOME": "/home/runner", "MOTD": "hi there"}
        )

        assert component.name == "EnvironmentVariables"
        assert component.get_commands(Os.LINUX_UBUNTU, X64) == []
        assert component.get_docker_commands(Os.LINUX_UBUNTU, X64) == [
            "ENV RUNNER_HOME=/home/runner",
            "ENV MOTD='hi there'",
        ]

    @pytest.mark.parametrize(
        "variables", [{"MOTD": "hi\nRUN rm -rf /"}, {"A\rB": "1"}]
    )
    def test_environment_variables_single_line(self, variables):
        """Each variable must stay on its own ENV line."""
        with pytest.raises(ConfigurationError) as exc_info:
            environment_variables(variables)
        assert exc_info.value.code == INVALID_COMPONENT


class TestComponentSchema:
    """Tests for ComponentSchema."""

    def test_custom(self, tmp_path):
        schema = ComponentSchema(
            name="tools",
            commands=["apt-get install -y git"],
            assets=[{"source": "files/motd", "target": "/etc/motd"}],
        )

        component = schema.to_component(tmp_path)

        assert component.name == "tools"
        assets = component.get_assets(Os.LINUX_UBUNTU, X64)
        assert assets == [
            AssetDescriptor(source=str(tmp_path / "files/motd"), target="/etc/motd")
        ]

    def test_absolute_source_kept(self, tmp_path):
        schema = ComponentSchema(
            name="tools", assets=[{"source": "/opt/motd", "target": "/etc/motd"}]
        )

        assets = schema.to_component(tmp_path).get_assets(Os.LINUX_UBUNTU, X64)

        assert assets[0].source == "/opt/motd"

    def test_builtin(self):
        component = ComponentSchema(builtin="runner_user").to_component()

        assert component.name == "RunnerUser"

    def test_builtin_environment_variables(self):
        component = ComponentSchema(
            builtin="environment_variables", variables={"A": "1"}
        ).to_component()

        assert component.get_docker_commands(Os.LINUX_UBUNTU, X64) == ["ENV A=1"]

    def test_requires_name_or_builtin(self):
        with pytest.raises(ValidationError):
            ComponentSchema(commands=["true"])

    def test_rejects_both(self):
        with pytest.raises(ValidationError):
            ComponentSchema(name="tools", builtin="runner_user")

    def test_builtin_takes_no_commands(self):
        with pytest.raises(ValidationError):
            ComponentSchema(builtin="runner_user", commands=["true"])

    def test_unknown_builtin(self):
        with pytest.raises(ValidationError):
            ComponentSchema(builtin="docker")

    def test_invalid_name(self):
        with pytest.raises(ValidationError):
            ComponentSchema(name="has space")

    def test_relative_target_rejected(self):
        with pytest.raises(ValidationError):
            ComponentSchema(name="tools", assets=[{"source": "a", "target": "etc/a"}])


class TestRecipeFile:
    """Tests for recipe file loading."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "recipe.yaml"
        path.write_text(
            """
options:
  os: linux-amazon-2023
  architecture: arm64
  rebuild_interval: 0
  environment:
    RUNNER_HOME: /home/runner
components:
  - builtin: required_packages
  - name: tools
    commands:
      - dnf install -y git
"""
        )

        recipe = load_recipe_file(path)

        assert recipe.options.os is Os.LINUX_AMAZON_2023
        assert recipe.options.architecture is Architecture.ARM64
        assert recipe.options.rebuild_interval == timedelta(0)
        assert recipe.options.environment == {"RUNNER_HOME": "/home/runner"}
        components = recipe.to_components(path.parent)
        assert [c.name for c in components] == ["RequiredPackages", "tools"]

    def test_load_json(self, tmp_path):
        path = tmp_path / "recipe.json"
        path.write_text(json.dumps({"components": [{"name": "tools"}]}))

        recipe = load_recipe_file(path)

        assert recipe.template is None
        assert recipe.options.os is Os.LINUX_UBUNTU
        assert len(recipe.components) == 1

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")

        assert read_recipe_data(path) == {}
        assert load_recipe_file(path) == RecipeFileSchema()

    def test_yaml_not_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="must contain a mapping.*got list"):
            load_recipe_file(path)

    def test_json_not_object(self, tmp_path):
        path = tmp_path / "recipe.json"
        path.write_text("[]")

        with pytest.raises(ValueError, match=r"Recipe file .*recipe\.json"):
            load_recipe_file(path)

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "recipe.toml"
        path.write_text("")

        with pytest.raises(ValueError, match="Unsupported recipe file extension"):
            load_recipe_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_recipe_file(tmp_path / "missing.yaml")

    def test_unknown_option_rejected(self, tmp_path):
        path = tmp_path / "recipe.yaml"
        path.write_text("options:\n  colour: blue\n")

        with pytest.raises(ValidationError):
            load_recipe_file(path)
