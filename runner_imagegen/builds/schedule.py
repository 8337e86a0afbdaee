"""Scheduled rebuilds.

Images are rebuilt periodically to pick up base image and security
updates. Each firing starts the build project directly and does not check
whether the recipe changed. A zero interval means manual rebuilds only
and creates no rule at all.

Scheduled builds carry no correlation ids, so their completion signal is
never delivered; failures are only visible through failure notifications.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from runner_imagegen.errors import INVALID_INTERVAL, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleRule:
    """A periodic rule starting a build project.

    Attributes:
        name: Rule name.
        description: Human-readable description.
        expression: Rate expression (e.g. ``rate(7 days)``).
        project: Build project started by the rule.
    """

    name: str
    description: str
    expression: str
    project: str


class RuleScheduler(Protocol):
    """Creates periodic rules (e.g. an event bus scheduler)."""

    def create_rule(self, rule: ScheduleRule) -> object: ...


def rate_expression(interval: timedelta) -> str:
    """Render an interval as a rate expression in the largest whole unit.

    Args:
        interval: Positive interval made of whole minutes.

    Returns:
        Expression such as ``rate(1 day)`` or ``rate(90 minutes)``.

    Raises:
        ConfigurationError: If the interval is not a positive whole number
            of minutes.
    """
    seconds = interval.total_seconds()
    if seconds <= 0 or seconds % 60:
        raise ConfigurationError(
            f"Rebuild interval must be a positive whole number of minutes, "
            f"got {interval}",
            code=INVALID_INTERVAL,
        )

    value, unit = int(seconds // 60), "minute"
    if value % (24 * 60) == 0:
        value, unit = value // (24 * 60), "day"
    elif value % 60 == 0:
        value, unit = value // 60, "hour"
    return f"rate({value} {unit}{'' if value == 1 else 's'})"


def arm_rebuild_schedule(
    project: str,
    repository_name: str,
    interval: timedelta,
    scheduler: RuleScheduler,
) -> ScheduleRule | None:
    """Arm a periodic rebuild of a build project.

    Args:
        project: Build project to start.
        repository_name: Repository the image is pushed to (for the description).
        interval: Rebuild interval; zero disables scheduled rebuilds.
        scheduler: Rule scheduler collaborator.

    Returns:
        The created rule, or None for a zero interval.

    Raises:
        ConfigurationError: If the interval is negative or not whole minutes.
    """
    if interval == timedelta(0):
        logger.info("Rebuild interval is zero, %s is rebuilt manually only", project)
        return None

    rule = ScheduleRule(
        name=f"{project}-build-schedule",
        description=f"Rebuild image for {repository_name}",
        expression=rate_expression(interval),
        project=project,
    )
    scheduler.create_rule(rule)
    logger.info("Armed rebuild schedule %s: %s", rule.name, rule.expression)
    return rule


__all__ = ["RuleScheduler", "ScheduleRule", "arm_rebuild_schedule", "rate_expression"]
