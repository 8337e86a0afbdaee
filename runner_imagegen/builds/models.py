"""Build invocation ORM model.

A BuildInvocation records one externally triggered run of a build
project, from the moment it is started until its completion signal.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from runner_imagegen.db import Base
from runner_imagegen.types import BuildStatus, TriggerSource


class BuildInvocation(Base):
    """ORM model for build invocations.

    Attributes:
        id: Primary key.
        builder_name: Name of the image builder.
        project: Executor project name.
        build_id: Build id assigned by the executor backend.
        recipe_version: Recipe version the build was started for.
        source: What started the build (provisioning or schedule).
        request_id: Provisioning request id, if any.
        status: Build status (pending, running, succeeded, failed).
        requested_at: Timestamp when the build was started.
        finished_at: Timestamp when the build finished.
        reason: Log excerpt from the completion signal.
        signal_delivered: Whether the completion signal reached its caller.
    """

    __tablename__ = "build_invocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    builder_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    project: Mapped[str] = mapped_column(String(255), nullable=False)
    build_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    recipe_version: Mapped[str] = mapped_column(String(32), nullable=False)
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TriggerSource.PROVISIONING.value
    )
    request_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value, index=True
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    signal_delivered: Mapped[bool] = mapped_column(nullable=False, default=False)

    __table_args__ = (
        Index("ix_build_invocations_builder_status", "builder_name", "status"),
    )

    def __repr__(self) -> str:
        """Return string representation of BuildInvocation."""
        return (
            f"<BuildInvocation(id={self.id}, builder='{self.builder_name}', "
            f"build_id='{self.build_id}', status='{self.status}')>"
        )

    @property
    def is_finished(self) -> bool:
        """Whether the invocation reached a terminal status."""
        return self.status in (BuildStatus.SUCCEEDED.value, BuildStatus.FAILED.value)

    def mark_running(self) -> None:
        """Mark this invocation as running."""
        self.status = BuildStatus.RUNNING.value

    def mark_finished(self, status: BuildStatus, reason: str | None = None) -> None:
        """Mark this invocation as finished with a terminal status.

        Args:
            status: SUCCEEDED or FAILED.
            reason: Log excerpt explaining the outcome.
        """
        if status not in (BuildStatus.SUCCEEDED, BuildStatus.FAILED):
            raise ValueError(f"Not a terminal status: {status.value}")
        self.status = status.value
        self.finished_at = datetime.now()
        if reason is not None:
            self.reason = reason


__all__ = ["BuildInvocation"]
