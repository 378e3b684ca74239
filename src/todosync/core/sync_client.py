"""Sync client for todosync.

This module provides the client side of the sync protocol:
- RemoteTaskStore talks to the task server over HTTP
- SyncClient reconciles the local task database with a remote store

A full sync pushes first and pulls second:
1. Push: deliver queued deletes, send every unsynced local task to the
   batch endpoint, then mark the pushed tasks synced
2. Pull: fetch the server's full list and overwrite the local copies

Both phases always run; a failure in one is recorded in the result and
does not stop the other.

CRITICAL: This module must have NO web or CLI dependencies.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from requests.utils import quote

from .config import Config
from .database import Database
from .errors import NotFound, RemoteError, RemoteUnreachable, TodoSyncError
from .models import Task, TaskPatch
from .validation import ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "RemoteTaskStore",
    "SyncClient",
    "SyncResult",
    "PhaseResult",
    "sync_now",
]


class RemoteTaskStore:
    """HTTP client for the task server.

    Exposes the same operations as the server-side TaskStore, so the
    sync client can work against either.

    Attributes:
        base_url: Server URL without trailing slash
        timeout: Per-request timeout in seconds
        max_retries: Retries for idempotent requests when unreachable
        retry_backoff: First retry delay in seconds, doubled each time
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Config) -> "RemoteTaskStore":
        """Create a client using the server settings from config."""
        return cls(
            config.get_server_url(),
            timeout=config.get_request_timeout(),
            max_retries=config.get_max_retries(),
            retry_backoff=config.get_retry_backoff(),
        )

    def close(self) -> None:
        self.session.close()

    # ===== Operations =====

    def list_all(self) -> List[Task]:
        """Get the server's full task list."""
        data = self._request("GET", "/tasks")
        return self._parse_tasks(data, "tasks")

    def create(
        self,
        title: str,
        description: str = "",
        is_completed: bool = False,
        updated_at: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Task:
        """Create a task on the server. Never retried."""
        body: Dict[str, Any] = {
            "title": title,
            "description": description,
            "isCompleted": is_completed,
        }
        if updated_at is not None:
            body["updatedAt"] = updated_at
        if task_id is not None:
            body["id"] = task_id
        data = self._request("POST", "/tasks", json_body=body, idempotent=False)
        return self._parse_task(data, "task")

    def update(self, task_id: str, patch: TaskPatch) -> Task:
        """Apply a partial update on the server.

        Raises:
            NotFound: If the server has no task with this id
        """
        body = {}
        for attr, value in patch.fields().items():
            body[_WIRE_NAMES[attr]] = value
        data = self._request(
            "PUT", _task_path(task_id), json_body=body, task_id=task_id
        )
        return self._parse_task(data, "task")

    def delete(self, task_id: str) -> Task:
        """Delete a task on the server.

        Raises:
            NotFound: If the server has no task with this id
        """
        data = self._request("DELETE", _task_path(task_id), task_id=task_id)
        return self._parse_task(data, "task")

    def reconcile(self, batch: List[Task]) -> List[Task]:
        """Push a batch of tasks to the batch-sync endpoint.

        Returns:
            The tasks the server inserted or overwrote
        """
        body = {"tasks": [task.to_dict() for task in batch]}
        data = self._request("POST", "/tasks/sync", json_body=body)
        return self._parse_tasks(data, "updated")

    def status(self) -> Dict[str, Any]:
        """Get the server health report."""
        return self._request("GET", "/health")

    # ===== Transport =====

    def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
        task_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Make a request to the server and return the decoded JSON body.

        Connection errors and timeouts are retried with exponential backoff
        when the request is idempotent.

        Raises:
            RemoteUnreachable: If the server cannot be reached
            NotFound: On HTTP 404 for a task-specific request
            ValidationError: On HTTP 400
            RemoteError: On any other unsuccessful response
        """
        url = f"{self.base_url}{path}"
        attempts = 1 + (self.max_retries if idempotent else 0)
        delay = self.retry_backoff

        for attempt in range(1, attempts + 1):
            try:
                logger.debug(f"{method} {url} (attempt {attempt}/{attempts})")
                response = self.session.request(
                    method, url, json=json_body, timeout=self.timeout
                )
                break
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt == attempts:
                    error_msg = f"Connection failed to {url}: {e}"
                    logger.error(error_msg)
                    raise RemoteUnreachable(error_msg) from e
                logger.warning(
                    f"{method} {url} failed ({e}), retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                delay *= 2
            except requests.RequestException as e:
                error_msg = f"Request to {url} failed: {e}"
                logger.error(error_msg)
                raise RemoteError(error_msg) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        error_text = data.get("error") if isinstance(data, dict) else None
        if response.status_code == 404 and task_id is not None:
            raise NotFound(task_id)
        if response.status_code == 400:
            raise ValidationError("request", error_text or "rejected by server")
        if not response.ok:
            error_msg = error_text or f"HTTP {response.status_code}: {response.reason}"
            logger.error(f"Request to {url} failed: {error_msg}")
            raise RemoteError(f"Server error: {error_msg}", response.status_code)
        if not isinstance(data, dict):
            raise RemoteError(f"Malformed response from {url}", response.status_code)
        if data.get("success") is False:
            raise RemoteError(f"Server error: {error_text or 'unknown error'}", response.status_code)
        return data

    @staticmethod
    def _parse_task(data: Dict[str, Any], key: str) -> Task:
        try:
            return Task.from_dict(data.get(key))
        except ValidationError as e:
            raise RemoteError(f"Malformed task in response: {e}") from None

    @staticmethod
    def _parse_tasks(data: Dict[str, Any], key: str) -> List[Task]:
        raw = data.get(key)
        if not isinstance(raw, list):
            raise RemoteError(f"Malformed response: '{key}' must be a list")
        try:
            return [Task.from_dict(item) for item in raw]
        except ValidationError as e:
            raise RemoteError(f"Malformed task in response: {e}") from None


def _task_path(task_id: str) -> str:
    return f"/tasks/{quote(task_id, safe='')}"


_WIRE_NAMES = {
    "title": "title",
    "description": "description",
    "is_completed": "isCompleted",
    "updated_at": "updatedAt",
    "is_synced": "isSynced",
}


@dataclass
class PhaseResult:
    """Outcome of one sync phase (push or pull).

    Attributes:
        success: False if the phase was abandoned on an error
        skipped: True if the phase made no network call
        count: Tasks pushed (push) or pulled (pull)
        updated: Tasks the server reported as inserted or overwritten (push only)
        deleted: Delete tombstones delivered to the server (push only)
        failed_deletes: Deletes the server refused, kept for the next sync (push only)
        error: Error message if the phase failed
        error_type: Exception class name if the phase failed
    """

    success: bool = True
    skipped: bool = False
    count: int = 0
    updated: int = 0
    deleted: int = 0
    failed_deletes: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None

    def fail(self, exc: Exception) -> None:
        self.success = False
        self.error = str(exc)
        self.error_type = type(exc).__name__


@dataclass
class SyncResult:
    """Result of a full sync: one PhaseResult per phase."""

    push: PhaseResult = field(default_factory=PhaseResult)
    pull: PhaseResult = field(default_factory=PhaseResult)

    @property
    def success(self) -> bool:
        """True only if both phases succeeded."""
        return self.push.success and self.pull.success

    @property
    def partial(self) -> bool:
        """True if exactly one phase failed."""
        return self.push.success != self.pull.success

    @property
    def errors(self) -> List[str]:
        errors = []
        if self.push.error:
            errors.append(f"Push failed: {self.push.error}")
        if self.pull.error:
            errors.append(f"Pull failed: {self.pull.error}")
        return errors


class _Flight:
    """A full sync in progress, shared by every caller that joins it."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[SyncResult] = None
        self.error: Optional[BaseException] = None


class SyncClient:
    """Synchronizes the local task database with a remote store.

    The remote may be a RemoteTaskStore or anything else exposing
    list_all(), reconcile(tasks) and delete(task_id) with the same
    semantics (the tests use a MemoryTaskStore directly).
    """

    def __init__(self, db: Database, remote: Any) -> None:
        """Initialize sync client.

        Args:
            db: Local task database
            remote: Remote task store
        """
        self.db = db
        self.remote = remote
        self._lock = threading.Lock()
        self._flight: Optional[_Flight] = None

    def full_sync(self) -> SyncResult:
        """Run push then pull.

        Single-flight: if a sync is already running, wait for it and
        return its result instead of starting another.

        Returns:
            SyncResult with the outcome of both phases
        """
        with self._lock:
            flight = self._flight
            leader = flight is None
            if leader:
                flight = self._flight = _Flight()

        if not leader:
            logger.info("Sync already in progress, waiting for it")
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result

        try:
            flight.result = self._run_full_sync()
            return flight.result
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._lock:
                self._flight = None
            flight.done.set()

    def _run_full_sync(self) -> SyncResult:
        logger.info("Starting full sync")
        result = SyncResult(push=self.push(), pull=self.pull())
        if result.success:
            logger.info(
                f"Sync complete: pushed={result.push.count} "
                f"(server updated {result.push.updated}), deleted={result.push.deleted}, "
                f"pulled={result.pull.count}"
            )
        else:
            logger.warning(f"Sync finished with errors: {'; '.join(result.errors)}")
        return result

    def push(self) -> PhaseResult:
        """Send local changes to the remote store.

        Queued deletes go first, then every unsynced task in one batch.
        Every pushed task is marked synced whether or not the server took
        it: either way its fate relative to the server is now settled.
        """
        result = PhaseResult()
        try:
            self._push_deletes(result)

            unsynced = [task for task in self.db.list_all() if not task.is_synced]
            if not unsynced:
                result.skipped = result.deleted == 0 and result.failed_deletes == 0
                logger.debug("Push: no unsynced tasks")
                return result

            logger.info(f"Push: sending {len(unsynced)} unsynced tasks")
            updated = self.remote.reconcile(unsynced)
            result.updated = len(updated)

            for task in unsynced:
                self.db.upsert(task.with_synced(True))
            result.count = len(unsynced)
        except TodoSyncError as e:
            logger.error(f"Push failed: {e}")
            result.fail(e)
        return result

    def _push_deletes(self, result: PhaseResult) -> None:
        """Deliver queued deletes, counting each on result as it lands.

        A server that refuses one delete keeps its tombstone for the next
        sync; only an unreachable server abandons the phase.
        """
        for task_id in self.db.pending_deletes():
            try:
                self.remote.delete(task_id)
            except NotFound:
                logger.debug(f"Push: task {task_id} already absent on server")
            except RemoteUnreachable:
                raise
            except TodoSyncError as e:
                logger.warning(f"Push: delete of {task_id} refused, will retry: {e}")
                result.failed_deletes += 1
                continue
            self.db.clear_pending_delete(task_id)
            result.deleted += 1
        if result.deleted:
            logger.info(f"Push: delivered {result.deleted} deletes")

    def pull(self) -> PhaseResult:
        """Overwrite local copies with the remote store's full list.

        Local tasks absent remotely are left alone. Tasks with a pending
        delete are not brought back.
        """
        result = PhaseResult()
        try:
            remote_tasks = self.remote.list_all()
            tombstones = set(self.db.pending_deletes())
            for task in remote_tasks:
                if task.id in tombstones:
                    logger.debug(f"Pull: skipping {task.id}, delete pending")
                    continue
                self.db.upsert(task.with_synced(True))
                result.count += 1
            logger.info(f"Pull: stored {result.count} tasks from server")
        except TodoSyncError as e:
            logger.error(f"Pull failed: {e}")
            result.fail(e)
        return result


def sync_now(db: Database, config: Config) -> SyncResult:
    """Run one full sync against the configured server.

    Args:
        db: Local task database
        config: Config instance

    Returns:
        SyncResult of the sync
    """
    remote = RemoteTaskStore.from_config(config)
    try:
        return SyncClient(db, remote).full_sync()
    finally:
        remote.close()
