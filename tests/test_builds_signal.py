"""Tests for builds/signal.py module.

These tests use mocked HTTP responses to test completion signal
construction, delivery and the signaling state machine.
"""

import json
from unittest.mock import MagicMock

import httpx
import pytest
import respx

from runner_imagegen.builds.signal import (
    CompletionSignal,
    CompletionSignaler,
    CorrelationIds,
    SignalState,
    SignalStatus,
    build_completion_signal,
    deliver_signal,
    new_idempotency_token,
    post_build_commands,
    sanitize_log,
    signal_status,
)
from runner_imagegen.types import UNSPECIFIED, BuildStatus

RESPONSE_URL = "https://callbacks.example.com/response?signature=abc"
REPO_ARN = "arn:aws:ecr:us-east-1:123456789012:repository/runner-image"


@pytest.fixture
def correlation() -> CorrelationIds:
    """Correlation ids of a waiting provisioning request."""
    return CorrelationIds(
        stack_id="stack-1",
        request_id="request-1",
        logical_resource_id="RunnerImage",
        response_url=RESPONSE_URL,
    )


@pytest.fixture
def build_log(tmp_path):
    """Write a build log and return its path."""
    path = tmp_path / "codebuild.log"
    path.write_text("Step 1/3\nStep 2/3\nSuccessfully built abc123\n")
    return path


class TestSanitizeLog:
    """Tests for sanitize_log function."""

    def test_strips_control_characters(self):
        """Escape sequences and NULs should be removed."""
        assert sanitize_log("hello\x1b[31mred\x00\n") == "hello[31mred\n"

    def test_strips_non_ascii(self):
        """Non-ASCII characters are not printable ASCII."""
        assert sanitize_log("café ✓") == "caf "

    def test_keeps_tail(self):
        """The end of the log is what explains a failure."""
        result = sanitize_log("x" * 500 + "ERROR: exit 1")

        assert len(result) == 400
        assert result.endswith("ERROR: exit 1")

    def test_short_log_unchanged(self):
        """Logs under the limit are kept whole."""
        assert sanitize_log("done\n") == "done\n"

    def test_custom_limit(self):
        """Should honor the given limit."""
        assert sanitize_log("abcdef", limit=3) == "def"

    def test_zero_limit(self):
        """A non-positive limit gives an empty reason."""
        assert sanitize_log("abcdef", limit=0) == ""

    def test_result_is_bounded_printable(self):
        """Any input yields at most 400 bytes of printable ASCII."""
        samples = [
            "",
            "\x00" * 1000,
            "éè" * 300 + "tail",
            "line\r\n" * 200,
            "".join(chr(i) for i in range(0, 300)) * 3,
        ]
        for text in samples:
            result = sanitize_log(text)
            assert len(result.encode("utf-8")) <= 400
            assert all(c == "\n" or (c.isprintable() and c.isascii()) for c in result)


class TestSignalStatus:
    """Tests for signal_status function."""

    def test_zero_is_success(self):
        assert signal_status(0) is SignalStatus.SUCCESS

    @pytest.mark.parametrize("exit_code", [1, 2, 137, -1, None])
    def test_anything_else_is_failure(self, exit_code):
        """Non-zero or missing exit codes are failures."""
        assert signal_status(exit_code) is SignalStatus.FAILED


class TestBuildCompletionSignal:
    """Tests for build_completion_signal function."""

    def test_payload_keys(self, correlation):
        """Payload should use the exact wire field names."""
        signal = build_completion_signal(0, "ok\n", correlation, REPO_ARN, token="t1")

        assert signal.to_payload() == {
            "StackId": "stack-1",
            "RequestId": "request-1",
            "LogicalResourceId": "RunnerImage",
            "PhysicalResourceId": REPO_ARN,
            "Status": "SUCCESS",
            "Reason": "ok\n",
            "Data": {"Random": "t1"},
        }

    def test_failed_build(self, correlation):
        signal = build_completion_signal(1, "boom", correlation, REPO_ARN)

        assert signal.status is SignalStatus.FAILED
        assert signal.reason == "boom"

    def test_placeholders_without_correlation(self):
        """Builds outside a provisioning request carry placeholder ids."""
        signal = build_completion_signal(0, "", CorrelationIds(), REPO_ARN)

        payload = signal.to_payload()
        assert payload["StackId"] == UNSPECIFIED
        assert payload["RequestId"] == UNSPECIFIED
        assert payload["LogicalResourceId"] == UNSPECIFIED

    def test_fresh_token_per_signal(self, correlation):
        """Each signal gets its own token."""
        first = build_completion_signal(0, "", correlation, REPO_ARN)
        second = build_completion_signal(0, "", correlation, REPO_ARN)

        assert first.data.random != second.data.random

    def test_json_roundtrip(self, correlation):
        """JSON text should parse back into the same signal."""
        signal = build_completion_signal(0, "log", correlation, REPO_ARN)

        assert CompletionSignal.model_validate_json(signal.to_json()) == signal

    def test_token_format(self):
        token = new_idempotency_token()
        assert len(token) == 32
        int(token, 16)


class TestCorrelationIds:
    """Tests for CorrelationIds dataclass."""

    def test_defaults_are_unspecified(self):
        ids = CorrelationIds.from_env({})

        assert ids == CorrelationIds()
        assert ids.response_url == UNSPECIFIED
        assert not ids.is_provisioning

    def test_from_env(self):
        ids = CorrelationIds.from_env(
            {
                "STACK_ID": "s",
                "REQUEST_ID": "r",
                "LOGICAL_RESOURCE_ID": "l",
                "RESPONSE_URL": RESPONSE_URL,
            }
        )

        assert ids.is_provisioning
        assert ids.to_env() == {
            "STACK_ID": "s",
            "REQUEST_ID": "r",
            "LOGICAL_RESOURCE_ID": "l",
            "RESPONSE_URL": RESPONSE_URL,
        }


class TestDeliverSignal:
    """Tests for deliver_signal function."""

    @respx.mock
    def test_put_with_empty_content_type(self, correlation):
        """Should PUT the JSON payload with an empty Content-Type."""
        route = respx.put(RESPONSE_URL).mock(return_value=httpx.Response(200))
        signal = build_completion_signal(0, "ok", correlation, REPO_ARN)

        with httpx.Client() as client:
            delivered = deliver_signal(signal, RESPONSE_URL, client)

        assert delivered is True
        assert route.call_count == 1
        request = route.calls.last.request
        assert request.method == "PUT"
        assert request.headers["Content-Type"] == ""
        assert json.loads(request.content) == signal.to_payload()

    @respx.mock
    def test_own_client(self, correlation):
        """Should work without a caller-provided client."""
        route = respx.put(RESPONSE_URL).mock(return_value=httpx.Response(200))
        signal = build_completion_signal(1, "failed", correlation, REPO_ARN)

        assert deliver_signal(signal, RESPONSE_URL) is True
        assert route.called

    def test_unspecified_url_skips_delivery(self, correlation):
        """No request is made when nobody is waiting."""
        client = MagicMock()
        signal = build_completion_signal(0, "ok", correlation, REPO_ARN)

        assert deliver_signal(signal, UNSPECIFIED, client) is False
        client.put.assert_not_called()

    @respx.mock
    def test_rejected_signal_not_raised(self, correlation):
        """HTTP errors are logged and reported, not raised."""
        route = respx.put(RESPONSE_URL).mock(return_value=httpx.Response(403))
        signal = build_completion_signal(0, "ok", correlation, REPO_ARN)

        with httpx.Client() as client:
            assert deliver_signal(signal, RESPONSE_URL, client) is False
        assert route.call_count == 1

    @respx.mock
    def test_connection_error_not_retried(self, correlation):
        """Transport errors are attempted once only."""
        route = respx.put(RESPONSE_URL).mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        signal = build_completion_signal(0, "ok", correlation, REPO_ARN)

        with httpx.Client() as client:
            assert deliver_signal(signal, RESPONSE_URL, client) is False
        assert route.call_count == 1

    def test_malformed_url_not_raised(self, correlation):
        """A response URL httpx cannot parse is reported as undelivered."""
        signal = build_completion_signal(0, "ok", correlation, REPO_ARN)

        assert deliver_signal(signal, "http://[::1") is False


class TestCompletionSignaler:
    """Tests for CompletionSignaler state machine."""

    @respx.mock
    def test_success(self, correlation, build_log):
        """Exit code zero should deliver a SUCCESS signal."""
        route = respx.put(RESPONSE_URL).mock(return_value=httpx.Response(200))
        signaler = CompletionSignaler(correlation, REPO_ARN)

        outcome = signaler.complete(0, build_log)

        assert outcome.status is BuildStatus.SUCCEEDED
        assert outcome.signal.status is SignalStatus.SUCCESS
        assert outcome.signal.reason.endswith("Successfully built abc123\n")
        assert outcome.delivered is True
        assert outcome.state is SignalState.SIGNALED
        assert signaler.state is SignalState.SIGNALED
        assert route.call_count == 1

    @respx.mock
    def test_failure_still_signals(self, correlation, build_log):
        """A failed build produces exactly one FAILED signal."""
        route = respx.put(RESPONSE_URL).mock(return_value=httpx.Response(200))
        signaler = CompletionSignaler(correlation, REPO_ARN)

        outcome = signaler.complete(2, build_log)

        assert outcome.status is BuildStatus.FAILED
        assert outcome.signal.status is SignalStatus.FAILED
        assert route.call_count == 1
        sent = json.loads(route.calls.last.request.content)
        assert sent["Status"] == "FAILED"

    def test_scheduled_build_not_delivered(self, build_log):
        """Builds without a response URL finish without any request."""
        client = MagicMock()
        signaler = CompletionSignaler(CorrelationIds(), REPO_ARN, client=client)

        outcome = signaler.complete(0, build_log)

        assert outcome.delivered is False
        assert outcome.state is SignalState.SIGNALED
        client.put.assert_not_called()

    def test_unreadable_log_fails(self, tmp_path):
        """A missing log turns the signal into a failure."""
        signaler = CompletionSignaler(CorrelationIds(), REPO_ARN)

        outcome = signaler.complete(0, tmp_path / "missing.log")

        assert outcome.status is BuildStatus.FAILED
        assert outcome.signal.reason.startswith("Unable to read build log")

    def test_complete_twice_raises(self, build_log):
        """Each invocation has exactly one signal."""
        signaler = CompletionSignaler(CorrelationIds(), REPO_ARN)
        signaler.complete(0, build_log)

        with pytest.raises(RuntimeError):
            signaler.complete(0, build_log)

    def test_custom_limit(self, build_log):
        signaler = CompletionSignaler(CorrelationIds(), REPO_ARN, limit=10)

        outcome = signaler.complete(0, build_log)

        assert len(outcome.signal.reason) == 10

    @respx.mock
    def test_post_processing_runs_after_delivery(self, correlation, build_log):
        """Best-effort steps see the delivered signal."""
        route = respx.put(RESPONSE_URL).mock(return_value=httpx.Response(200))
        seen = []

        def record(signal):
            seen.append((signal.status, route.called))

        signaler = CompletionSignaler(correlation, REPO_ARN, post_processors=[record])
        signaler.complete(0, build_log)

        assert seen == [(SignalStatus.SUCCESS, True)]

    def test_malformed_response_url_still_signals(self, build_log):
        """An unusable response URL must not skip the rest of completion."""
        seen = []
        correlation = CorrelationIds(
            stack_id="s",
            request_id="r",
            logical_resource_id="l",
            response_url="http://[::1",
        )
        signaler = CompletionSignaler(
            correlation, REPO_ARN, post_processors=[seen.append]
        )

        outcome = signaler.complete(0, build_log)

        assert outcome.delivered is False
        assert outcome.state is SignalState.SIGNALED
        assert signaler.state is SignalState.SIGNALED
        assert len(seen) == 1

    def test_post_processing_failure_ignored(self, build_log):
        """A failing best-effort step does not change the outcome."""
        calls = []

        def broken(signal):
            raise RuntimeError("index generation failed")

        signaler = CompletionSignaler(
            CorrelationIds(),
            REPO_ARN,
            post_processors=[broken, lambda signal: calls.append(signal)],
        )

        outcome = signaler.complete(0, build_log)

        assert outcome.status is BuildStatus.SUCCEEDED
        assert outcome.post_processing_errors == ["index generation failed"]
        assert len(calls) == 1


class TestPostBuildCommands:
    """Tests for post_build_commands function."""

    def test_status_derived_from_build_phase(self):
        commands = post_build_commands()

        assert 'STATUS="SUCCESS"' in commands[0]
        assert "CODEBUILD_BUILD_SUCCEEDING" in commands[1]
        assert 'STATUS="FAILED"' in commands[1]

    def test_payload_fields(self):
        payload = post_build_commands()[2]

        for key in (
            "StackId",
            "RequestId",
            "LogicalResourceId",
            "PhysicalResourceId",
            "Status",
            "Reason",
            "Data",
        ):
            assert f'"{key}"' in payload
        assert '"PhysicalResourceId": "$REPO_ARN"' in payload
        assert "tail -c 400" in payload
        assert "$RANDOM" in payload

    def test_limit(self):
        assert "tail -c 100" in post_build_commands(limit=100)[2]

    def test_delivery_guarded_by_response_url(self):
        delivery = post_build_commands()[3]

        assert delivery.startswith('if [ "$RESPONSE_URL" != "unspecified" ]')
        assert "curl -fsSL -X PUT" in delivery
        assert '-H "Content-Type:"' in delivery
