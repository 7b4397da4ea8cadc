"""Tests for meshhub.core.tasks: submission, polling, terminal states and timeout."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from meshhub.core.errors import HttpError, TaskError, TaskTimeoutError, TransportError
from meshhub.core.tasks import COMPLIANCE_AUDIT, MAX_ATTEMPTS, Task, TaskPoller, TaskStatus

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _poller(snapshots: list | None = None, task_id: str = "task-1") -> tuple[TaskPoller, MagicMock, MagicMock]:
    api = MagicMock()
    api.post.return_value = {"id": task_id}
    if snapshots is not None:
        api.get.side_effect = snapshots
    sleep = MagicMock()
    return TaskPoller(api, sleep=sleep), api, sleep


def _pending() -> dict:
    return {"status": "pending"}


# ---------------------------------------------------------------------------
# Task snapshot parsing
# ---------------------------------------------------------------------------


def test_task_from_snapshot_done() -> None:
    task = Task.from_snapshot("t", {"status": "done", "result": {"score": 9}})
    assert task.status == TaskStatus.DONE
    assert task.result == {"score": 9}
    assert task.is_terminal is True


def test_task_unknown_status_is_not_terminal() -> None:
    task = Task.from_snapshot("t", {"status": "queued"})
    assert task.status == TaskStatus.PENDING
    assert task.is_terminal is False


def test_task_to_dict_keeps_backend_fields() -> None:
    task = Task.from_snapshot("t", {"status": "done", "result": 1, "progress": 100})
    assert task.to_dict() == {"status": "done", "result": 1, "progress": 100, "id": "t"}


# ---------------------------------------------------------------------------
# submit_and_await
# ---------------------------------------------------------------------------


def test_submission_body() -> None:
    poller, api, _ = _poller([{"status": "done"}])

    poller.submit_and_await("compliance_audit", {"company": "Acme", "framework": "SOC2"})

    api.post.assert_called_once_with(
        "/tasks",
        {"kind": "compliance_audit", "data": {"company": "Acme", "framework": "SOC2"}},
    )
    api.get.assert_called_once_with("/tasks/task-1")


@pytest.mark.parametrize("k", [0, 1, 5, 29])
def test_returns_after_k_pending_then_done(k: int) -> None:
    """k pending polls then done -> exactly k+1 status calls and k sleeps."""
    snapshots = [_pending() for _ in range(k)] + [{"status": "done", "result": "ok"}]
    poller, api, sleep = _poller(snapshots)

    task = poller.submit_and_await("kind", {})

    assert task.status == TaskStatus.DONE
    assert task.result == "ok"
    assert task.id == "task-1"
    assert api.get.call_count == k + 1
    assert sleep.call_count == k


def test_always_pending_times_out_after_thirty_polls() -> None:
    poller, api, sleep = _poller([_pending() for _ in range(MAX_ATTEMPTS + 5)])

    with pytest.raises(TaskTimeoutError) as exc_info:
        poller.submit_and_await("kind", {})

    assert api.get.call_count == 30
    assert exc_info.value.attempts == 30
    assert exc_info.value.task_id == "task-1"
    assert isinstance(exc_info.value, TimeoutError)
    # No sleep after the final attempt.
    assert sleep.call_count == 29


def test_interval_passed_to_sleep() -> None:
    poller, _, sleep = _poller([_pending(), {"status": "done"}])

    poller.submit_and_await("kind", {}, interval=0.25)

    sleep.assert_called_once_with(0.25)


def test_default_interval_is_two_seconds() -> None:
    poller, _, sleep = _poller([_pending(), {"status": "done"}])
    poller.submit_and_await("kind", {})
    sleep.assert_called_once_with(2.0)


def test_custom_attempt_budget() -> None:
    poller, api, _ = _poller([_pending() for _ in range(10)])

    with pytest.raises(TaskTimeoutError):
        poller.submit_and_await("kind", {}, max_attempts=3)

    assert api.get.call_count == 3


def test_error_status_fails_immediately() -> None:
    poller, api, sleep = _poller([_pending(), {"status": "error", "error": "scanner crashed"}, _pending()])

    with pytest.raises(TaskError, match="scanner crashed") as exc_info:
        poller.submit_and_await("kind", {})

    assert exc_info.value.retryable is False
    assert api.get.call_count == 2
    assert sleep.call_count == 1


def test_error_status_without_message() -> None:
    poller, _, _ = _poller([{"status": "error"}])
    with pytest.raises(TaskError, match="task-1"):
        poller.submit_and_await("kind", {})


def test_transport_error_during_poll_propagates_immediately() -> None:
    poller, api, sleep = _poller([_pending(), TransportError("GET /tasks/task-1 failed"), _pending()])

    with pytest.raises(TransportError):
        poller.submit_and_await("kind", {})

    assert api.get.call_count == 2
    assert sleep.call_count == 1


def test_http_error_on_submit_propagates() -> None:
    poller, api, _ = _poller([])
    api.post.side_effect = HttpError(400, "bad kind", reason="Bad Request")

    with pytest.raises(HttpError):
        poller.submit_and_await("nope", {})

    api.get.assert_not_called()


def test_submission_without_id_raises_task_error() -> None:
    poller, api, _ = _poller([])
    api.post.return_value = {"status": "accepted"}

    with pytest.raises(TaskError):
        poller.submit_and_await("kind", {})

    api.get.assert_not_called()


def test_task_id_is_url_quoted() -> None:
    poller, api, _ = _poller([{"status": "done"}], task_id="a/b c")
    poller.submit_and_await("kind", {})
    api.get.assert_called_once_with("/tasks/a%2Fb%20c")


def test_on_poll_sees_every_snapshot() -> None:
    poller, _, _ = _poller([_pending(), _pending(), {"status": "done"}])
    seen: list[tuple[int, str]] = []

    poller.submit_and_await("kind", {}, on_poll=lambda n, t: seen.append((n, t.status.value)))

    assert seen == [(1, "pending"), (2, "pending"), (3, "done")]


def test_queue_compliance_audit_uses_audit_kind() -> None:
    poller, api, _ = _poller([{"status": "done"}])

    poller.queue_compliance_audit({"company": "Acme"})

    assert api.post.call_args.args[1]["kind"] == COMPLIANCE_AUDIT
