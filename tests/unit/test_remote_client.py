"""Unit tests for the HTTP remote task store.

Tests request building, response parsing, error mapping and retries with
a mocked requests session.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from todosync.core.config import Config
from todosync.core.database import Database
from todosync.core.errors import NotFound, RemoteError, RemoteUnreachable
from todosync.core.models import TaskPatch
from todosync.core.sync_client import RemoteTaskStore, sync_now
from todosync.core.validation import ValidationError

from tests.helpers import T0, T1, make_task


def make_response(status_code: int = 200, body: Any = None) -> MagicMock:
    """Build a fake requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "OK" if status_code < 400 else "Error"
    if body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def remote(session: MagicMock) -> RemoteTaskStore:
    return RemoteTaskStore(
        "http://server:3000/", timeout=2.0, max_retries=2, retry_backoff=0.5, session=session
    )


class TestInit:
    """Test RemoteTaskStore construction."""

    def test_strips_trailing_slash(self, remote: RemoteTaskStore) -> None:
        """Base URL has no trailing slash."""
        assert remote.base_url == "http://server:3000"

    def test_from_config(self, test_config: Config) -> None:
        """Settings come from the config file."""
        test_config.set_server_url("http://10.0.0.2:4000")
        test_config.set("request_timeout", 3)
        test_config.set("max_retries", 5)
        remote = RemoteTaskStore.from_config(test_config)
        try:
            assert remote.base_url == "http://10.0.0.2:4000"
            assert remote.timeout == 3.0
            assert remote.max_retries == 5
        finally:
            remote.close()


class TestOperations:
    """Test requests sent for each operation."""

    def test_list_all(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """GET /tasks returns parsed tasks."""
        task = make_task("a", "Buy milk", T0, is_synced=True)
        session.request.return_value = make_response(
            200, {"success": True, "tasks": [task.to_dict()]}
        )

        assert remote.list_all() == [task]
        session.request.assert_called_once_with(
            "GET", "http://server:3000/tasks", json=None, timeout=2.0
        )

    def test_reconcile(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """POST /tasks/sync sends the batch and returns the updated list."""
        local = make_task("a", "Local", T1, is_synced=False)
        session.request.return_value = make_response(
            200, {"success": True, "updated": [local.with_synced(True).to_dict()]}
        )

        assert remote.reconcile([local]) == [local.with_synced(True)]
        session.request.assert_called_once_with(
            "POST", "http://server:3000/tasks/sync",
            json={"tasks": [local.to_dict()]}, timeout=2.0,
        )

    def test_create_sends_optional_fields(self, remote: RemoteTaskStore,
                                          session: MagicMock) -> None:
        """POST /tasks carries id and updatedAt when given."""
        created = make_task("client-1", "Buy milk", T0, is_synced=True)
        session.request.return_value = make_response(
            201, {"success": True, "task": created.to_dict()}
        )

        assert remote.create("Buy milk", updated_at=T0, task_id="client-1") == created
        _, kwargs = session.request.call_args
        assert kwargs["json"] == {
            "title": "Buy milk",
            "description": "",
            "isCompleted": False,
            "updatedAt": T0,
            "id": "client-1",
        }

    def test_update_sends_only_patch_fields(self, remote: RemoteTaskStore,
                                            session: MagicMock) -> None:
        """PUT /tasks/<id> uses wire names for provided fields only."""
        updated = make_task("a", "Buy milk", T1, is_synced=True, is_completed=True)
        session.request.return_value = make_response(
            200, {"success": True, "task": updated.to_dict()}
        )

        remote.update("a", TaskPatch(is_completed=True, updated_at=T1))
        args, kwargs = session.request.call_args
        assert args == ("PUT", "http://server:3000/tasks/a")
        assert kwargs["json"] == {"isCompleted": True, "updatedAt": T1}

    def test_delete(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """DELETE /tasks/<id> returns the deleted task."""
        task = make_task("a", is_synced=True)
        session.request.return_value = make_response(200, {"success": True, "task": task.to_dict()})
        assert remote.delete("a") == task

    @pytest.mark.parametrize("task_id,segment", [
        ("a?b", "a%3Fb"),
        ("a#b", "a%23b"),
        ("a b%", "a%20b%25"),
    ])
    def test_task_id_is_quoted_in_path(self, remote: RemoteTaskStore, session: MagicMock,
                                       task_id: str, segment: str) -> None:
        """Reserved characters in an id stay inside the path segment."""
        task = make_task(task_id, is_synced=True)
        session.request.return_value = make_response(200, {"success": True, "task": task.to_dict()})

        remote.delete(task_id)
        remote.update(task_id, TaskPatch(title="x"))

        urls = [call.args[1] for call in session.request.call_args_list]
        assert urls == [f"http://server:3000/tasks/{segment}"] * 2

    def test_status(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """GET /health returns the raw report."""
        session.request.return_value = make_response(
            200, {"success": True, "status": "ok", "tasks": 3}
        )
        assert remote.status()["tasks"] == 3


class TestErrorMapping:
    """Test translation of HTTP outcomes into errors."""

    def test_404_on_task_is_not_found(self, remote: RemoteTaskStore,
                                      session: MagicMock) -> None:
        """A 404 for a task path raises NotFound."""
        session.request.return_value = make_response(
            404, {"success": False, "error": "Task not found", "id": "a"}
        )
        with pytest.raises(NotFound) as exc_info:
            remote.delete("a")
        assert exc_info.value.task_id == "a"

    def test_404_on_collection_is_remote_error(self, remote: RemoteTaskStore,
                                               session: MagicMock) -> None:
        """A 404 for /tasks means a wrong server, not a missing task."""
        session.request.return_value = make_response(404, {"success": False, "error": "Not found"})
        with pytest.raises(RemoteError) as exc_info:
            remote.list_all()
        assert exc_info.value.status_code == 404

    def test_400_is_validation_error(self, remote: RemoteTaskStore,
                                     session: MagicMock) -> None:
        """A 400 carries the server's message."""
        session.request.return_value = make_response(
            400, {"success": False, "error": "Invalid title: cannot be empty"}
        )
        with pytest.raises(ValidationError) as exc_info:
            remote.create("x")
        assert "cannot be empty" in exc_info.value.message

    def test_500_is_remote_error(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """A 5xx is reported with its status."""
        session.request.return_value = make_response(500, {"success": False, "error": "boom"})
        with pytest.raises(RemoteError) as exc_info:
            remote.list_all()
        assert exc_info.value.status_code == 500
        assert "boom" in str(exc_info.value)

    def test_non_json_body(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """A 200 without JSON is malformed."""
        session.request.return_value = make_response(200, None)
        with pytest.raises(RemoteError):
            remote.list_all()

    def test_success_false(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """success: false is an error even with status 200."""
        session.request.return_value = make_response(200, {"success": False, "error": "nope"})
        with pytest.raises(RemoteError):
            remote.list_all()

    def test_missing_list(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """A response without the expected list is malformed."""
        session.request.return_value = make_response(200, {"success": True})
        with pytest.raises(RemoteError):
            remote.reconcile([])

    def test_malformed_task(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """A task missing required fields is malformed."""
        session.request.return_value = make_response(
            200, {"success": True, "tasks": [{"id": "a"}]}
        )
        with pytest.raises(RemoteError):
            remote.list_all()

    def test_other_request_exception(self, remote: RemoteTaskStore,
                                     session: MagicMock) -> None:
        """Non-network request failures are not retried."""
        session.request.side_effect = requests.exceptions.InvalidURL("bad url")
        with pytest.raises(RemoteError):
            remote.list_all()
        assert session.request.call_count == 1


class TestRetries:
    """Test retrying when the server is unreachable."""

    def test_idempotent_request_retries_with_backoff(
        self, remote: RemoteTaskStore, session: MagicMock
    ) -> None:
        """GET is retried with doubling delays, then raises."""
        session.request.side_effect = requests.ConnectionError("refused")
        with patch("todosync.core.sync_client.time.sleep") as mock_sleep:
            with pytest.raises(RemoteUnreachable):
                remote.list_all()
        assert session.request.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    def test_recovers_after_timeout(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """A later attempt can succeed."""
        session.request.side_effect = [
            requests.Timeout("slow"),
            make_response(200, {"success": True, "tasks": []}),
        ]
        with patch("todosync.core.sync_client.time.sleep"):
            assert remote.list_all() == []
        assert session.request.call_count == 2

    def test_create_is_not_retried(self, remote: RemoteTaskStore, session: MagicMock) -> None:
        """POST /tasks is sent once."""
        session.request.side_effect = requests.ConnectionError("refused")
        with patch("todosync.core.sync_client.time.sleep") as mock_sleep:
            with pytest.raises(RemoteUnreachable):
                remote.create("Buy milk")
        assert session.request.call_count == 1
        mock_sleep.assert_not_called()

    def test_no_retries_configured(self, session: MagicMock) -> None:
        """max_retries=0 makes a single attempt."""
        remote = RemoteTaskStore("http://server:3000", max_retries=0, session=session)
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(RemoteUnreachable):
            remote.reconcile([])
        assert session.request.call_count == 1


class TestSyncNow:
    """Test the one-shot sync helper."""

    def test_unreachable_server_reports_both_phases(
        self, populated_db: Database, test_config: Config
    ) -> None:
        """Both phases fail without raising and local data is untouched."""
        test_config.set("max_retries", 0)
        with patch("requests.Session.request",
                   side_effect=requests.ConnectionError("refused")):
            result = sync_now(populated_db, test_config)

        assert not result.success
        assert result.push.error_type == "RemoteUnreachable"
        assert result.pull.error_type == "RemoteUnreachable"
        assert populated_db.count_unsynced() == 1
