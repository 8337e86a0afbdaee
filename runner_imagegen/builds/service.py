"""Build invocation service.

This module provides the high-level build API:
- start_build(): trigger a build and record the invocation
- refresh_status(): update an invocation from the executor backend
- record_completion(): store the outcome of a completion signal
- Invocation lookup and listing
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from runner_imagegen.builds.models import BuildInvocation
from runner_imagegen.builds.signal import CorrelationIds
from runner_imagegen.errors import BuildInvocationNotFoundError
from runner_imagegen.types import UNSPECIFIED, BuildStatus, TriggerSource

if TYPE_CHECKING:
    from runner_imagegen.builds.signal import InvocationOutcome
    from runner_imagegen.builds.trigger import BuildExecutorTrigger

logger = logging.getLogger(__name__)


def start_build(
    session: Session,
    trigger: BuildExecutorTrigger,
    correlation: CorrelationIds | None = None,
) -> BuildInvocation:
    """Start a build and record it as a new invocation.

    Builds with a response URL belong to a provisioning transaction;
    anything else is recorded as a scheduled rebuild.

    Args:
        session: Database session.
        trigger: Build executor trigger to start.
        correlation: Correlation ids of the provisioning request.

    Returns:
        The created BuildInvocation in running state.

    Raises:
        ConfigurationError: If the builder configuration is invalid.
    """
    correlation = correlation or CorrelationIds()
    build_id = trigger.trigger_now(correlation)

    source = (
        TriggerSource.PROVISIONING
        if correlation.is_provisioning
        else TriggerSource.SCHEDULE
    )
    invocation = BuildInvocation(
        builder_name=trigger.name,
        project=trigger.project_name or trigger.name,
        build_id=build_id,
        recipe_version=trigger.recipe_version.version,
        source=source.value,
        request_id=(
            correlation.request_id
            if correlation.request_id != UNSPECIFIED
            else None
        ),
        status=BuildStatus.PENDING.value,
    )
    invocation.mark_running()
    session.add(invocation)
    session.flush()
    logger.info("Recorded invocation %d for build %s", invocation.id, build_id)
    return invocation


def refresh_status(
    session: Session,
    invocation: BuildInvocation,
    trigger: BuildExecutorTrigger,
) -> BuildInvocation:
    """Update an invocation with the status reported by the backend.

    Finished invocations are left untouched.
    """
    if invocation.is_finished:
        return invocation

    status = trigger.status(invocation.build_id)
    if status in (BuildStatus.SUCCEEDED, BuildStatus.FAILED):
        invocation.mark_finished(status)
    else:
        invocation.status = status.value
    session.flush()
    return invocation


def record_completion(
    session: Session,
    invocation: BuildInvocation,
    outcome: InvocationOutcome,
) -> BuildInvocation:
    """Store the outcome of an invocation's completion signal."""
    invocation.mark_finished(outcome.status, reason=outcome.signal.reason)
    invocation.signal_delivered = outcome.delivered
    session.flush()
    logger.info(
        "Invocation %d finished: %s (signal delivered=%s)",
        invocation.id,
        outcome.status.value,
        outcome.delivered,
    )
    return invocation


def get_invocation(session: Session, invocation_id: int) -> BuildInvocation:
    """Get an invocation by ID.

    Raises:
        BuildInvocationNotFoundError: If the invocation is not found.
    """
    invocation = session.get(BuildInvocation, invocation_id)
    if invocation is None:
        raise BuildInvocationNotFoundError(invocation_id)
    return invocation


def get_invocation_by_build_id(
    session: Session, build_id: str
) -> BuildInvocation | None:
    """Get an invocation by its backend build id, or None."""
    stmt = select(BuildInvocation).where(BuildInvocation.build_id == build_id)
    return session.execute(stmt).scalar_one_or_none()


def list_invocations(
    session: Session,
    builder_name: str | None = None,
    status: BuildStatus | None = None,
    limit: int = 100,
) -> list[BuildInvocation]:
    """List invocations, newest first, with optional filters."""
    stmt = select(BuildInvocation)

    if builder_name is not None:
        stmt = stmt.where(BuildInvocation.builder_name == builder_name)
    if status is not None:
        stmt = stmt.where(BuildInvocation.status == status.value)

    stmt = stmt.order_by(BuildInvocation.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "get_invocation",
    "get_invocation_by_build_id",
    "list_invocations",
    "record_completion",
    "refresh_status",
    "start_build",
]
