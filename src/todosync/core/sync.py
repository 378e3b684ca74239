"""Batch-sync endpoint of the task server.

Clients push every task they changed offline to POST /tasks/sync. The
server resolves each one against its own copy by updatedAt (last write
wins, ties keep the server copy) and answers with the tasks it accepted.

Sync Protocol:
1. Push: POST /tasks/sync with {"tasks": [...]} -> {"success": true, "updated": [...]}
2. Pull: GET /tasks -> {"success": true, "tasks": [...]}

CRITICAL: This module must have NO CLI dependencies.
"""

from __future__ import annotations

import logging
from typing import Any, List, Tuple

from flask import Blueprint, jsonify, request

from .models import Task
from .store import TaskStore
from .validation import ValidationError, validate_task_list

logger = logging.getLogger(__name__)

__all__ = ["create_sync_blueprint", "parse_task_batch"]


def parse_task_batch(data: Any) -> List[Task]:
    """Parse and validate a sync request body.

    The whole batch is validated before anything is applied, so a single
    malformed task rejects the request without side effects.

    Args:
        data: Decoded JSON body, expected to be {"tasks": [...]}

    Returns:
        List of tasks in request order

    Raises:
        ValidationError: If the body or any task is malformed
    """
    if not isinstance(data, dict):
        raise ValidationError("body", "must be a JSON object")
    if "tasks" not in data:
        raise ValidationError("tasks", "is required")
    raw_tasks = validate_task_list(data["tasks"])

    tasks: List[Task] = []
    for i, raw in enumerate(raw_tasks):
        try:
            tasks.append(Task.from_dict(raw))
        except ValidationError as e:
            raise ValidationError("tasks", f"item {i}: {e}") from None
    return tasks


def create_sync_blueprint(store: TaskStore) -> Blueprint:
    """Create Flask blueprint for the batch-sync endpoint.

    Args:
        store: The server's task store

    Returns:
        Flask Blueprint with the /tasks/sync route
    """
    sync_bp = Blueprint("sync", __name__, url_prefix="/tasks")

    @sync_bp.route("/sync", methods=["POST"])
    def sync_tasks() -> Tuple[Any, int]:
        """Reconcile a batch of client tasks.

        Request body:
            {"tasks": [Task, ...]}

        Response:
            {"success": true, "updated": [Task, ...]}
        """
        data = request.get_json(silent=True)
        if data is None:
            error_msg = "Missing JSON request body in sync"
            logger.warning(f"Sync rejected: {error_msg}")
            return jsonify({"success": False, "error": error_msg}), 400

        try:
            batch = parse_task_batch(data)
        except ValidationError as e:
            logger.warning(f"Sync rejected: {e}")
            return jsonify({"success": False, "error": f"Invalid {e.field}: {e.message}"}), 400

        logger.info(f"Sync request with {len(batch)} tasks from {request.remote_addr}")
        updated = store.reconcile(batch)

        return jsonify({
            "success": True,
            "updated": [task.to_dict() for task in updated],
        }), 200

    return sync_bp
