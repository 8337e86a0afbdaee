"""Build completion signaling.

This module handles:
- Deriving the final status from the build phase exit code
- Sanitizing and truncating the build log into the signal reason
- Constructing the provisioning callback payload
- Delivering the payload with an HTTP PUT to the caller's response URL
- Rendering the same protocol as post-build shell commands

Each build invocation produces exactly one completion signal, whether the
build succeeded or failed. The signal is delivered at most once and never
retried; a URL of ``unspecified`` means nobody is waiting (e.g. a
scheduled rebuild) and delivery is skipped.

Payload format (keys are exact)::

    {
      "StackId": "...",
      "RequestId": "...",
      "LogicalResourceId": "...",
      "PhysicalResourceId": "...",
      "Status": "SUCCESS" | "FAILED",
      "Reason": "<last 400 printable bytes of the build log>",
      "Data": {"Random": "<fresh token>"}
    }
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
from pydantic import BaseModel, ConfigDict, Field

from runner_imagegen.types import UNSPECIFIED, BuildStatus

logger = logging.getLogger(__name__)

DEFAULT_REASON_LIMIT = 400
DEFAULT_SIGNAL_TIMEOUT = 30.0

BUILD_LOG_PATH = "/tmp/codebuild.log"
PAYLOAD_PATH = "/tmp/payload.json"

# Environment variables carrying the correlation ids into the build
ENV_STACK_ID = "STACK_ID"
ENV_REQUEST_ID = "REQUEST_ID"
ENV_LOGICAL_RESOURCE_ID = "LOGICAL_RESOURCE_ID"
ENV_RESPONSE_URL = "RESPONSE_URL"
ENV_REPO_ARN = "REPO_ARN"
ENV_REPO_URI = "REPO_URI"


class SignalState(str, Enum):
    """Lifecycle of one invocation's completion signal."""

    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SIGNALED = "signaled"


class SignalStatus(str, Enum):
    """Status values understood by the provisioning system."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class CorrelationIds:
    """Identifiers passed through from the triggering provisioning request.

    All default to ``unspecified`` for builds started outside a
    provisioning transaction.
    """

    stack_id: str = UNSPECIFIED
    request_id: str = UNSPECIFIED
    logical_resource_id: str = UNSPECIFIED
    response_url: str = UNSPECIFIED

    @property
    def is_provisioning(self) -> bool:
        """Whether a provisioning transaction is waiting on this build."""
        return self.response_url != UNSPECIFIED

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> CorrelationIds:
        """Read correlation ids from build environment variables."""
        return cls(
            stack_id=env.get(ENV_STACK_ID, UNSPECIFIED),
            request_id=env.get(ENV_REQUEST_ID, UNSPECIFIED),
            logical_resource_id=env.get(ENV_LOGICAL_RESOURCE_ID, UNSPECIFIED),
            response_url=env.get(ENV_RESPONSE_URL, UNSPECIFIED),
        )

    def to_env(self) -> dict[str, str]:
        """Render as build environment variable overrides."""
        return {
            ENV_STACK_ID: self.stack_id,
            ENV_REQUEST_ID: self.request_id,
            ENV_LOGICAL_RESOURCE_ID: self.logical_resource_id,
            ENV_RESPONSE_URL: self.response_url,
        }


class SignalData(BaseModel):
    """Response data of a completion signal."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    random: str = Field(alias="Random")


class CompletionSignal(BaseModel):
    """Provisioning callback payload."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    stack_id: str = Field(alias="StackId")
    request_id: str = Field(alias="RequestId")
    logical_resource_id: str = Field(alias="LogicalResourceId")
    physical_resource_id: str = Field(alias="PhysicalResourceId")
    status: SignalStatus = Field(alias="Status")
    reason: str = Field(alias="Reason")
    data: SignalData = Field(alias="Data")

    def to_payload(self) -> dict[str, object]:
        """Return the payload with its wire field names."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        """Return the payload as JSON text."""
        return self.model_dump_json(by_alias=True)


def sanitize_log(text: str, limit: int = DEFAULT_REASON_LIMIT) -> str:
    """Strip non-printable characters and keep the tail of a build log.

    Only printable ASCII is kept; newlines are kept as line separators.
    The result is at most ``limit`` bytes (and characters).

    Args:
        text: Raw build log.
        limit: Maximum length of the result.

    Returns:
        Sanitized log tail.
    """
    printable = "".join(c for c in text if c == "\n" or " " <= c <= "~")
    if limit <= 0:
        return ""
    return printable[-limit:]


def new_idempotency_token() -> str:
    """Return a fresh random token for the signal's response data."""
    return uuid.uuid4().hex


def signal_status(build_exit_code: int | None) -> SignalStatus:
    """Map the build phase exit code to a signal status.

    Anything but an exit code of exactly zero is a failure, including a
    missing exit code (the build phase never finished).
    """
    return SignalStatus.SUCCESS if build_exit_code == 0 else SignalStatus.FAILED


def build_completion_signal(
    build_exit_code: int | None,
    log_text: str,
    correlation: CorrelationIds,
    physical_resource_id: str,
    limit: int = DEFAULT_REASON_LIMIT,
    token: str | None = None,
) -> CompletionSignal:
    """Construct the completion signal of a build invocation.

    Args:
        build_exit_code: Exit code of the build phase.
        log_text: Raw build log.
        correlation: Correlation ids of the triggering request.
        physical_resource_id: Id stable across rebuilds of the same image.
        limit: Maximum reason length.
        token: Idempotency token (a fresh one if not given).

    Returns:
        CompletionSignal instance.
    """
    return CompletionSignal(
        stack_id=correlation.stack_id,
        request_id=correlation.request_id,
        logical_resource_id=correlation.logical_resource_id,
        physical_resource_id=physical_resource_id,
        status=signal_status(build_exit_code),
        reason=sanitize_log(log_text, limit),
        data=SignalData(random=token or new_idempotency_token()),
    )


def deliver_signal(
    signal: CompletionSignal,
    response_url: str,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_SIGNAL_TIMEOUT,
) -> bool:
    """Deliver a completion signal to the caller's response URL.

    Delivery is attempted once. Failures are logged and not raised;
    retrying is the transport's responsibility.

    Args:
        signal: Signal to deliver.
        response_url: Pre-signed URL to PUT the payload to.
        client: Optional HTTP client (a temporary one is used if omitted).
        timeout: Request timeout in seconds.

    Returns:
        True if the endpoint accepted the signal, False if delivery was
        skipped or failed.
    """
    if response_url == UNSPECIFIED:
        logger.info("No response URL, skipping completion signal delivery")
        return False

    body = signal.to_json()
    # The pre-signed URL is signed without a content type
    headers = {"Content-Type": ""}

    try:
        if client is None:
            with httpx.Client(timeout=timeout) as own_client:
                response = own_client.put(response_url, content=body, headers=headers)
        else:
            response = client.put(
                response_url, content=body, headers=headers, timeout=timeout
            )
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(
            "Completion signal rejected with HTTP %d", e.response.status_code
        )
        return False
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error("Failed to deliver completion signal: %s", e)
        return False

    logger.info("Delivered %s completion signal", signal.status.value)
    return True


@dataclass
class InvocationOutcome:
    """Result of completing one build invocation.

    Attributes:
        status: Final build status.
        signal: The completion signal produced.
        delivered: Whether the signal reached the response URL.
        state: Final signal state (always SIGNALED).
        post_processing_errors: Errors raised by best-effort steps.
    """

    status: BuildStatus
    signal: CompletionSignal
    delivered: bool
    state: SignalState
    post_processing_errors: list[str] = field(default_factory=list)


PostProcessor = Callable[[CompletionSignal], object]


class CompletionSignaler:
    """Produces the single completion signal of one build invocation.

    State moves STARTED -> SUCCEEDED | FAILED -> SIGNALED. Completing twice
    is an error: an invocation has exactly one signal.
    """

    def __init__(
        self,
        correlation: CorrelationIds,
        physical_resource_id: str,
        client: httpx.Client | None = None,
        limit: int = DEFAULT_REASON_LIMIT,
        timeout: float = DEFAULT_SIGNAL_TIMEOUT,
        post_processors: Sequence[PostProcessor] = (),
    ) -> None:
        self.correlation = correlation
        self.physical_resource_id = physical_resource_id
        self.client = client
        self.limit = limit
        self.timeout = timeout
        self.post_processors = list(post_processors)
        self.state = SignalState.STARTED

    def complete(self, build_exit_code: int | None, log_path: Path) -> InvocationOutcome:
        """Finish the invocation and deliver its completion signal.

        Args:
            build_exit_code: Exit code of the build phase (None if unknown).
            log_path: Path to the build log.

        Returns:
            InvocationOutcome describing what happened.

        Raises:
            RuntimeError: If the invocation was already completed.
        """
        if self.state is not SignalState.STARTED:
            raise RuntimeError("Completion signal was already produced")

        try:
            log_text = log_path.read_text(encoding="utf-8", errors="replace")
            signal = build_completion_signal(
                build_exit_code,
                log_text,
                self.correlation,
                self.physical_resource_id,
                limit=self.limit,
            )
        except OSError as e:
            logger.error("Unable to read build log %s: %s", log_path, e)
            signal = build_completion_signal(
                1,
                f"Unable to read build log: {e}",
                self.correlation,
                self.physical_resource_id,
                limit=self.limit,
            )

        if signal.status is SignalStatus.SUCCESS:
            self.state = SignalState.SUCCEEDED
            status = BuildStatus.SUCCEEDED
        else:
            self.state = SignalState.FAILED
            status = BuildStatus.FAILED
        logger.info("Build finished with status %s", status.value)

        delivered = deliver_signal(
            signal, self.correlation.response_url, self.client, self.timeout
        )
        self.state = SignalState.SIGNALED

        errors = []
        for post_processor in self.post_processors:
            try:
                post_processor(signal)
            except Exception as e:
                logger.warning("Post-processing step failed, ignoring: %s", e)
                errors.append(str(e))

        return InvocationOutcome(
            status=status,
            signal=signal,
            delivered=delivered,
            state=self.state,
            post_processing_errors=errors,
        )


def post_build_commands(limit: int = DEFAULT_REASON_LIMIT) -> list[str]:
    """Render the completion signal protocol as post-build shell commands.

    The executor sets CODEBUILD_BUILD_SUCCEEDING to 0 once any build phase
    command fails, so cleanup commands cannot turn a failure into success.
    """
    payload = (
        f"cat <<EOF > {PAYLOAD_PATH}\n"
        "{\n"
        f'  "StackId": "${ENV_STACK_ID}",\n'
        f'  "RequestId": "${ENV_REQUEST_ID}",\n'
        f'  "LogicalResourceId": "${ENV_LOGICAL_RESOURCE_ID}",\n'
        f'  "PhysicalResourceId": "${ENV_REPO_ARN}",\n'
        '  "Status": "$STATUS",\n'
        f"  \"Reason\": `sed 's/[^[:print:]]//g' {BUILD_LOG_PATH} "
        f"| tail -c {limit} | jq -Rsa .`,\n"
        '  "Data": {"Random": "$RANDOM"}\n'
        "}\n"
        "EOF"
    )
    return [
        'rm -f codebuild-log.sh && STATUS="SUCCESS"',
        'if [ $CODEBUILD_BUILD_SUCCEEDING -ne 1 ]; then STATUS="FAILED"; fi',
        payload,
        f'if [ "${ENV_RESPONSE_URL}" != "{UNSPECIFIED}" ]; then '
        f"jq . {PAYLOAD_PATH}; "
        f'curl -fsSL -X PUT -H "Content-Type:" -d "@{PAYLOAD_PATH}" "${ENV_RESPONSE_URL}"; '
        "fi",
    ]


__all__ = [
    "BUILD_LOG_PATH",
    "DEFAULT_REASON_LIMIT",
    "DEFAULT_SIGNAL_TIMEOUT",
    "PAYLOAD_PATH",
    "CompletionSignal",
    "CompletionSignaler",
    "CorrelationIds",
    "InvocationOutcome",
    "PostProcessor",
    "SignalData",
    "SignalState",
    "SignalStatus",
    "build_completion_signal",
    "deliver_signal",
    "new_idempotency_token",
    "post_build_commands",
    "sanitize_log",
    "signal_status",
]
