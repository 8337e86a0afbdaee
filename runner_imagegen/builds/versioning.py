"""Recipe version derivation.

This module handles:
- Component identity computed from a component's full contribution
- Content digests of local assets, so edits in place re-version a recipe
- Canonical recipe input snapshot creation
- Deterministic version computation over the canonical snapshot

Identical recipes always produce the same version, so unchanged
configurations never trigger a rebuild. Any change, including reordering
components, produces a new version.

Version encoding:
    The recipe inputs are serialized to JSON with sorted keys, compact
    separators and lists in their given order, then hashed with SHA-256.
    The version is ``1.0.<N>`` where ``N`` is the integer value of the
    first 8 hex digits of the digest (0 <= N < 2**32). The registry only
    accepts three dotted non-negative integers, so the digest cannot be
    used directly. Changing this encoding re-versions every recipe; bump
    RECIPE_SCHEMA_VERSION when doing so.
"""

from __future__ import annotations

import hashlib
import json
import stat
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from runner_imagegen.components.base import ImageComponent
from runner_imagegen.types import Architecture, Os

# Schema version for the recipe snapshot; bump when the snapshot format changes
RECIPE_SCHEMA_VERSION = "2"

VERSION_PREFIX = "1.0"
VERSION_HEX_DIGITS = 8


@dataclass(frozen=True)
class RecipeInputs:
    """Canonical representation of everything that determines a build.

    Attributes:
        schema_version: Version of the snapshot schema.
        recipe_type: Kind of recipe (e.g. ContainerRecipe).
        name: Recipe name.
        platform: Platform tag (Linux or Windows).
        components: Component identities, in build order.
        template: Dockerfile template text.
    """

    recipe_type: str
    name: str
    platform: str
    components: tuple[str, ...]
    template: str
    schema_version: str = RECIPE_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["components"] = [{"component": c} for c in self.components]
        return data


@dataclass(frozen=True)
class RecipeVersion:
    """Derived version of a recipe.

    Attributes:
        version: Registry version string (``1.0.<N>``).
        digest: Full SHA-256 hex digest of the canonical inputs.
    """

    version: str
    digest: str

    def __str__(self) -> str:
        return self.version


def canonical_json(data: Any) -> str:
    """Serialize data to canonical JSON (sorted keys, no extra whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def platform_tag(os: Os) -> str:
    """Return the platform tag of an OS."""
    return "Windows" if os is Os.WINDOWS else "Linux"


def _hash_file(hasher: Any, rel_path: str, path: Path) -> None:
    # path\0mode\0content\0
    hasher.update(rel_path.encode("utf-8"))
    hasher.update(b"\0")
    hasher.update(f"{stat.S_IMODE(path.stat().st_mode):o}".encode())
    hasher.update(b"\0")
    hasher.update(path.read_bytes())
    hasher.update(b"\0")


def asset_content_digest(source: str) -> str | None:
    """Compute a deterministic digest of a local asset's content.

    A file is hashed over its mode and bytes. A directory is hashed over
    its files in sorted relative-path order, each with its path, mode and
    bytes, so the result does not depend on where the tree lives.

    Args:
        source: Local path of the asset.

    Returns:
        SHA-256 hex digest, or None if the path is neither a file nor a
        directory (the assembler reports such assets).
    """
    path = Path(source)
    hasher = hashlib.sha256()

    if path.is_file():
        _hash_file(hasher, "", path)
    elif path.is_dir():
        for child in sorted(path.rglob("*")):
            if child.is_file():
                _hash_file(hasher, child.relative_to(path).as_posix(), child)
    else:
        return None
    return hasher.hexdigest()


def component_identity(component: ImageComponent, os: Os, arch: Architecture) -> str:
    """Compute the identity of a component for the given platform.

    The identity covers the component's full contribution, not just its
    name, so editing a command, an asset target or the content of an
    asset in place changes it.

    Args:
        component: Component to identify.
        os: Target OS.
        arch: Target architecture.

    Returns:
        Identity as ``sha256:<hex>``.
    """
    contribution = {
        "name": component.name,
        "assets": [
            {
                "source": a.source,
                "target": a.target,
                "content": asset_content_digest(a.source),
            }
            for a in component.get_assets(os, arch)
        ],
        "commands": list(component.get_commands(os, arch)),
        "docker_commands": list(component.get_docker_commands(os, arch)),
    }
    digest = hashlib.sha256(canonical_json(contribution).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def create_recipe_inputs(
    name: str,
    os: Os,
    arch: Architecture,
    components: Sequence[ImageComponent],
    template: str,
    recipe_type: str = "ContainerRecipe",
) -> RecipeInputs:
    """Create canonical recipe inputs.

    Args:
        name: Recipe name.
        os: Target OS.
        arch: Target architecture.
        components: Components in build order.
        template: Dockerfile template text.
        recipe_type: Kind of recipe.

    Returns:
        RecipeInputs instance.
    """
    return RecipeInputs(
        recipe_type=recipe_type,
        name=name,
        platform=platform_tag(os),
        components=tuple(component_identity(c, os, arch) for c in components),
        template=template,
    )


def compute_recipe_version(inputs: RecipeInputs) -> RecipeVersion:
    """Compute the version of a recipe.

    Args:
        inputs: RecipeInputs instance.

    Returns:
        RecipeVersion with the registry version and full digest.
    """
    digest = hashlib.sha256(canonical_json(inputs.to_dict()).encode("utf-8")).hexdigest()
    patch = int(digest[:VERSION_HEX_DIGITS], 16)
    return RecipeVersion(version=f"{VERSION_PREFIX}.{patch}", digest=digest)


__all__ = [
    "RECIPE_SCHEMA_VERSION",
    "VERSION_HEX_DIGITS",
    "VERSION_PREFIX",
    "RecipeInputs",
    "RecipeVersion",
    "asset_content_digest",
    "canonical_json",
    "component_identity",
    "compute_recipe_version",
    "create_recipe_inputs",
    "platform_tag",
]
