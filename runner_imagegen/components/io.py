"""Recipe file loading.

Recipe files are YAML or JSON; the format is chosen by file extension.
Relative asset sources resolve against the recipe file's directory.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from runner_imagegen.components.schema import RecipeFileSchema

RECIPE_SUFFIXES = (".yaml", ".yml", ".json")


def read_recipe_data(path: Path) -> dict[str, Any]:
    """Read the raw contents of a recipe file.

    An empty YAML recipe is an empty mapping, i.e. a recipe with default
    options and no components.

    Args:
        path: Path to a .yaml, .yml or .json recipe file.

    Returns:
        Top-level mapping of the recipe.

    Raises:
        ValueError: If the extension is not a recipe extension or the
            document is not a mapping.
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If a YAML recipe cannot be parsed.
        json.JSONDecodeError: If a JSON recipe cannot be parsed.
    """
    suffix = path.suffix.lower()
    if suffix not in RECIPE_SUFFIXES:
        raise ValueError(
            f"Unsupported recipe file extension {suffix!r} for {path}: "
            f"use one of {', '.join(RECIPE_SUFFIXES)}"
        )

    with open(path, encoding="utf-8") as f:
        data = json.load(f) if suffix == ".json" else yaml.safe_load(f)

    if data is None and suffix != ".json":
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Recipe file {path} must contain a mapping with 'options' and "
            f"'components', got {type(data).__name__}"
        )
    return data


def load_recipe_file(path: Path) -> RecipeFileSchema:
    """Load and validate a recipe file.

    Args:
        path: Path to a .yaml, .yml or .json recipe file.

    Returns:
        Validated RecipeFileSchema instance.

    Raises:
        ValueError: If the file is not a recipe file.
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If data does not match schema.
    """
    return RecipeFileSchema.model_validate(read_recipe_data(path))


__all__ = ["RECIPE_SUFFIXES", "load_recipe_file", "read_recipe_data"]
