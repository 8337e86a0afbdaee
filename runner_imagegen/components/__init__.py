"""Image components.

This module handles:
- The component descriptor protocol
- Built-in components
- Declarative recipe files (schema and loading)
"""

from runner_imagegen.components.base import ImageComponent, validate_component_name
from runner_imagegen.components.builtin import (
    CustomComponent,
    custom,
    environment_variables,
    required_packages,
    runner_user,
)

__all__ = [
    "CustomComponent",
    "ImageComponent",
    "custom",
    "environment_variables",
    "required_packages",
    "runner_user",
    "validate_component_name",
]
