#!/usr/bin/env python3
"""
Taskboard Server
----------------
JSON API over the application shell: the browser board renders from
/api/board and sends move / reorder / edit / delete intents back.

Usage:
    python board_server.py --config taskboard.yaml
    python board_server.py --host 0.0.0.0 --port 3000

API:
    GET    /api/board                 → { view, category_filter, columns, categories, session }
    GET    /api/tasks?category=       → { tasks, count }
    POST   /api/tasks                 → create   (title, assignee, due_date required)
    PUT    /api/tasks/<id>            → edit fields
    POST   /api/tasks/<id>/move       → { status }
    POST   /api/tasks/reorder         → { ids: [...] }  local order only
    DELETE /api/tasks/<id>?confirm=true
    GET    /api/categories
    POST   /api/view                  → { mode: "grid"|"kanban", category }
    POST   /api/auth/sign-in          → { email, password }
    POST   /api/auth/sign-up          → { email, password }
    POST   /api/auth/sign-out
    GET    /api/auth/session
    GET    /health

Write routes require an X-API-Key header when TASKBOARD_API_SECRET is set.
"""

import hmac
import logging
import os
import sys
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from pkg.taskboard.auth import AuthClient, AuthError, SessionManager
from pkg.taskboard.config import BoardConfig, ConfigError
from pkg.taskboard.events import EventBridge
from pkg.taskboard.fallback import FallbackTaskStore
from pkg.taskboard.remote import RemoteTaskStore, RestClient
from pkg.taskboard.schema import TaskStatus, ValidationError
from pkg.taskboard.shell import ApplicationShell, IntentResult, IntentStatus
from pkg.taskboard.store import LocalTaskCache

logger = logging.getLogger(__name__)

# Status code per intent outcome
INTENT_STATUS_CODES = {
    IntentStatus.APPLIED: 200,
    IntentStatus.NOOP: 200,
    IntentStatus.STALE: 409,
    IntentStatus.FAILED: 502,
    IntentStatus.CANCELLED: 409,
    IntentStatus.NOT_FOUND: 404,
}


def _intent_response(result: IntentResult, created: bool = False):
    code = INTENT_STATUS_CODES[result.status]
    if created and result.status == IntentStatus.APPLIED:
        code = 201
    return jsonify(result.to_dict()), code


def build_services(config: BoardConfig):
    """Construct and wire cache, stores, session and shell from config."""
    events = EventBridge()
    cache = LocalTaskCache(config.cache_db, namespace=config.cache_namespace)

    client = None
    remote = None
    auth_client = None
    if config.backend_configured:
        client = RestClient(config.backend_url, config.anon_key, timeout=config.request_timeout)
        remote = RemoteTaskStore(client, config.tasks_table, config.categories_table)
        auth_client = AuthClient(client)
    else:
        logger.warning("Backend not configured; tasks are kept in the local cache only")

    sessions = SessionManager(cache, auth_client, demo_mode=config.demo_mode, events=events)
    if client is not None:
        # Read per request, so the bearer token follows sign-in / sign-out
        client.token_provider = sessions.access_token

    shell = ApplicationShell(
        FallbackTaskStore(remote, cache),
        request_timeout=config.request_timeout,
        events=events,
    )
    sessions.subscribe(shell.on_session_changed)
    if sessions.get_current_user() is not None:
        shell.load()
    return shell, sessions


def create_app(shell: ApplicationShell, sessions: SessionManager, api_secret: Optional[str] = None) -> Flask:
    app = Flask(__name__)
    secret = api_secret if api_secret is not None else os.environ.get("TASKBOARD_API_SECRET", "")

    def require_api_key(f):
        """Decorator: reject writes without a valid X-API-Key header (when a secret is set)."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if secret:
                provided = request.headers.get("X-API-Key", "").strip()
                if not hmac.compare_digest(provided, secret):
                    code = 401 if not provided else 403
                    return jsonify({"error": "Unauthorized"}), code
            return f(*args, **kwargs)
        return decorated

    def require_user(f):
        """Decorator: task routes need a signed-in (or demo) user."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if sessions.get_current_user() is None:
                return jsonify({"error": "Sign in required", "session": sessions.to_dict()}), 401
            return f(*args, **kwargs)
        return decorated

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e)}), 400

    # ── Board ────────────────────────────────────────────────────────────────

    @app.route("/api/board")
    @require_user
    def api_board():
        board = shell.board()
        board["session"] = sessions.to_dict()
        board["alerts"] = shell.acknowledge_alerts()
        return jsonify(board)

    @app.route("/api/view", methods=["POST"])
    @require_user
    def api_view():
        data = request.get_json(force=True, silent=True) or {}
        if "mode" in data:
            shell.set_view_mode(data["mode"])
        if "category" in data:
            shell.set_category_filter(data["category"])
        return jsonify({"view": shell.view_mode.value, "category_filter": shell.category_filter})

    # ── Tasks ────────────────────────────────────────────────────────────────

    @app.route("/api/tasks", methods=["GET"])
    @require_user
    def api_tasks():
        category = request.args.get("category")
        selected = shell.tasks_in_category(category) if category else shell.visible_tasks()
        tasks = [t.to_dict() for t in selected]
        return jsonify({"tasks": tasks, "count": len(tasks)})

    @app.route("/api/tasks", methods=["POST"])
    @require_api_key
    @require_user
    def api_create_task():
        data = request.get_json(force=True, silent=True) or {}
        return _intent_response(shell.create_task(data), created=True)

    @app.route("/api/tasks/<task_id>", methods=["PUT"])
    @require_api_key
    @require_user
    def api_update_task(task_id):
        data = request.get_json(force=True, silent=True) or {}
        return _intent_response(shell.update_task(task_id, data))

    @app.route("/api/tasks/<task_id>/move", methods=["POST"])
    @require_api_key
    @require_user
    def api_move_task(task_id):
        data = request.get_json(force=True, silent=True) or {}
        raw = str(data.get("status", "")).strip().lower()
        try:
            status = TaskStatus(raw)
        except ValueError:
            allowed = ", ".join(s.value for s in TaskStatus)
            return jsonify({"error": f"Invalid status: '{raw}'. Allowed: {allowed}"}), 400
        return _intent_response(shell.move_task(task_id, status))

    @app.route("/api/tasks/reorder", methods=["POST"])
    @require_api_key
    @require_user
    def api_reorder_tasks():
        data = request.get_json(force=True, silent=True) or {}
        ids = data.get("ids")
        if not isinstance(ids, list) or not ids:
            return jsonify({"error": "ids must be a non-empty list"}), 400
        ordered = []
        for task_id in ids:
            task = shell.get_task(str(task_id))
            if task is None:
                return jsonify({"error": f"Unknown task: {task_id}"}), 404
            ordered.append(task)
        return _intent_response(shell.reorder_tasks(ordered))

    @app.route("/api/tasks/<task_id>", methods=["DELETE"])
    @require_api_key
    @require_user
    def api_delete_task(task_id):
        confirmed = request.args.get("confirm", "").lower() in ("1", "true", "yes")
        return _intent_response(shell.delete_task(task_id, confirm=confirmed))

    @app.route("/api/categories")
    @require_user
    def api_categories():
        counts = {}
        for task in shell.tasks:
            category = shell.category_for(task)
            key = category.id if category else "uncategorized"
            counts[key] = counts.get(key, 0) + 1
        return jsonify({
            "categories": [c.to_dict() for c in shell.categories],
            "counts": counts,
        })

    # ── Auth ─────────────────────────────────────────────────────────────────

    def _credentials():
        data = request.get_json(force=True, silent=True) or {}
        email = str(data.get("email", "")).strip()
        password = str(data.get("password", ""))
        if not email or not password:
            raise ValidationError("email and password are required")
        return email, password

    @app.route("/api/auth/session")
    def api_session():
        return jsonify(sessions.to_dict())

    @app.route("/api/auth/sign-in", methods=["POST"])
    @require_api_key
    def api_sign_in():
        email, password = _credentials()
        try:
            sessions.sign_in(email, password)
        except AuthError as e:
            return jsonify({"error": str(e)}), 401
        return jsonify(sessions.to_dict())

    @app.route("/api/auth/sign-up", methods=["POST"])
    @require_api_key
    def api_sign_up():
        email, password = _credentials()
        try:
            user = sessions.sign_up(email, password)
        except AuthError as e:
            return jsonify({"error": str(e)}), 400
        body = sessions.to_dict()
        body["registered"] = user.to_dict()
        body["confirmation_required"] = sessions.get_current_user() is None
        return jsonify(body), 201

    @app.route("/api/auth/sign-out", methods=["POST"])
    @require_api_key
    def api_sign_out():
        sessions.sign_out()
        return jsonify(sessions.to_dict())

    @app.route("/health")
    def health():
        store = shell.store
        return jsonify({
            "status": "ok",
            "backend": "remote" if getattr(store, "remote_enabled", False) else "local",
            "last_source": getattr(store, "last_source", None),
            "session": sessions.state.value,
        })

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--config", help="Path to taskboard.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        level=logging.DEBUG if args.debug else logging.INFO,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        config = BoardConfig.load(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    shell, sessions = build_services(config)
    app = create_app(shell, sessions)

    logger.info(f"Taskboard on http://{args.host}:{args.port} "
                f"(backend: {'remote' if config.backend_configured else 'local'}, "
                f"cache: {config.cache_db})")
    try:
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
    finally:
        shell.close()


if __name__ == "__main__":
    main()
