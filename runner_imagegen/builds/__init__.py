"""Build orchestration module.

This module handles:
- Recipe versioning
- Build script assembly
- Build job definitions and the executor trigger
- Completion signaling
- Scheduled rebuilds and failure notifications
- Build invocation records
"""

from runner_imagegen.builds.models import BuildInvocation

__all__ = ["BuildInvocation"]

# Access submodules directly (runner_imagegen.builds.trigger, etc.)
# to avoid circular imports
