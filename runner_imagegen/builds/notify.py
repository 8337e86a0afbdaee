"""Failure notifications for image builders.

Callers that want to hear about failed builds register their triggers
explicitly when composing their builders. Scheduled rebuilds have no
provisioning transaction to fail, so this is the only way their failures
surface.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from runner_imagegen.builds.trigger import BuildExecutorTrigger

logger = logging.getLogger(__name__)


def attach_failure_notifications(
    triggers: Iterable[BuildExecutorTrigger],
    topic: str,
) -> list[object]:
    """Send failed build events of every bound trigger to a topic.

    Triggers that were never bound have no build project to watch; they
    are skipped with a warning instead of failing the whole composition.

    Args:
        triggers: Build executor triggers to watch.
        topic: Notification topic (e.g. an SNS topic ARN).

    Returns:
        Handles returned by the backend, one per attached trigger.
    """
    handles = []
    for trigger in triggers:
        if trigger.project_name is None:
            logger.warning(
                "Unused builder %s cannot get notifications of failed builds",
                trigger.name,
            )
            continue
        handle = trigger.backend.notify_on_build_failed(trigger.project_name, topic)
        handles.append(handle)
        logger.debug("Attached failure notifications for %s to %s", trigger.name, topic)
    return handles


__all__ = ["attach_failure_notifications"]
