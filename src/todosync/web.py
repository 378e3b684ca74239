#!/usr/bin/env python3
"""Task server for todosync.

This module provides the RESTful HTTP API holding the authoritative task
list. Uses only core/ modules.

Endpoints:
    GET    /tasks            List all tasks
    POST   /tasks            Create a new task
    PUT    /tasks/<id>       Update some fields of a task
    DELETE /tasks/<id>       Delete a task
    POST   /tasks/sync       Reconcile a batch of client tasks (see core.sync)
    GET    /health           Health check

All endpoints return JSON responses with a "success" member. Errors carry
an "error" message: 400 for malformed input, 404 for unknown task IDs.

POST /tasks body:
    - title: Task title (string, required)
    - description, isCompleted, updatedAt, id: optional

PUT /tasks/<id> body:
    - any subset of title, description, isCompleted, updatedAt, isSynced
"""

from __future__ import annotations

import argparse
import functools
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from todosync.core.config import Config
from todosync.core.errors import NotFound
from todosync.core.models import TaskPatch
from todosync.core.store import MemoryTaskStore, TaskStore
from todosync.core.sync import create_sync_blueprint
from todosync.core.validation import ValidationError, validate_task_id

logger = logging.getLogger(__name__)


def api_endpoint(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Catches ValidationError (400), NotFound (404) and Exception (500) with
    proper JSON error responses and logging.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            logger.warning(f"Validation error in {func.__name__}: {e}")
            return jsonify({"success": False, "error": f"Invalid {e.field}: {e.message}"}), 400
        except NotFound as e:
            return jsonify({"success": False, "error": "Task not found", "id": e.task_id}), 404
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            return jsonify({"success": False, "error": str(e)}), 500
    return wrapper


def create_app(store: Optional[TaskStore] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        store: Task store to serve (default: a new, empty MemoryTaskStore)

    Returns:
        Configured Flask application. The store is available as
        app.extensions["task_store"].
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    if store is None:
        store = MemoryTaskStore()
    app.extensions["task_store"] = store

    app.register_blueprint(create_sync_blueprint(store))

    # Error handlers
    @app.errorhandler(404)
    def not_found(error: Any) -> tuple[Response, int]:
        """Handle 404 errors."""
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error: Any) -> tuple[Response, int]:
        """Handle 405 errors."""
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error: Any) -> tuple[Response, int]:
        """Handle 500 errors."""
        logger.error(f"Internal error: {error}")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    # Routes
    @app.route("/tasks", methods=["GET"])
    @api_endpoint
    def list_tasks() -> Response:
        """Get all tasks."""
        tasks = store.list_all()
        return jsonify({"success": True, "tasks": [t.to_dict() for t in tasks]})

    @app.route("/tasks", methods=["POST"])
    @api_endpoint
    def create_task() -> tuple[Response, int]:
        """Create a new task.

        isSynced is accepted but ignored: stored tasks are always synced.
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("body", "a JSON object is required")
        if "title" not in data:
            raise ValidationError("title", "is required")

        is_completed = data.get("isCompleted")
        task = store.create(
            data["title"],
            description=data.get("description"),
            is_completed=False if is_completed is None else is_completed,
            updated_at=data.get("updatedAt"),
            task_id=data.get("id"),
        )
        logger.info(f"Created task {task.id} via API")
        return jsonify({"success": True, "task": task.to_dict()}), 201

    @app.route("/tasks/<task_id>", methods=["PUT"])
    @api_endpoint
    def update_task(task_id: str) -> tuple[Response, int]:
        """Update some fields of a task."""
        validate_task_id(task_id)
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError("body", "a JSON object is required")

        task = store.update(task_id, TaskPatch.from_dict(data))
        logger.info(f"Updated task {task_id} via API")
        return jsonify({"success": True, "task": task.to_dict()}), 200

    @app.route("/tasks/<task_id>", methods=["DELETE"])
    @api_endpoint
    def delete_task(task_id: str) -> tuple[Response, int]:
        """Delete a task and return it."""
        validate_task_id(task_id)
        task = store.delete(task_id)
        logger.info(f"Deleted task {task_id} via API")
        return jsonify({"success": True, "task": task.to_dict()}), 200

    @app.route("/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        """Health check endpoint.

        Returns:
            JSON response indicating service health
        """
        return jsonify({"success": True, "status": "ok", "tasks": store.count()}), 200

    return app


def add_web_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add web subparser and its arguments.

    Args:
        subparsers: Parent subparsers object to add web parser to
    """
    web_parser = subparsers.add_parser(
        "web",
        help="Start the task server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    web_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: server_host from config, 127.0.0.1)"
    )

    web_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: server_port from config, 3000)"
    )

    web_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run the task server with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have host, port, debug attributes)

    Returns:
        Exit code (0 for success)
    """
    config = Config(config_dir=config_dir)
    try:
        host = args.host or config.get_server_host()
        port = args.port or config.get_server_port()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Starting todosync task server on http://{host}:{port}")
    if config_dir:
        logger.info(f"Using custom config directory: {config_dir}")

    app = create_app()
    app.run(host=host, port=port, debug=args.debug)

    return 0
