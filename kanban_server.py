#!/usr/bin/env python3
"""
Markdown Kanban Server
----------------------
JSON API over a directory of markdown task files, plus a Server-Sent-Events
stream that pushes file changes to the board UI.

Usage:
    python kanban_server.py                       # current project from ~/.kanban-ui
    python kanban_server.py --tasks-dir ./tasks   # pin the task root
    KANBAN_TASKS_DIR=./tasks python kanban_server.py

API:
    GET    /api/tasks                      → [task, ...] in board order
    POST   /api/tasks                      → create   { title, status, ... }
    PUT    /api/tasks/<status>/<filename>  → update   { partial fields }
    POST   /api/tasks/move                 → move     { fromStatus, filename, toStatus, position? }
    POST   /api/tasks/reorder              → reorder  { status, orderedIds }
    DELETE /api/tasks/<status>/<filename>  → delete
    GET    /api/tasks/events               → SSE change stream
    GET    /api/tasks/config   PUT         → project.json
    GET    /api/tasks/notes    PUT         → notes.md  { content }
    /api/projects ...                      → project registry
    GET    /api/health
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from flask import Flask, Response, jsonify, request

from mdkanban.config import Config
from mdkanban.errors import Conflict, ProjectNotFound, TaskNotFound, ValidationError
from mdkanban.events import ChangeNotifier
from mdkanban.projects import ProjectRegistry, validate_project_path
from mdkanban.schema import TaskStatus, normalize_patch
from mdkanban.store import TaskStore
from mdkanban.watcher import TaskWatcher

logger = logging.getLogger("kanban_server")


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def create_app(
    cfg: Optional[Config] = None,
    *,
    store: Optional[TaskStore] = None,
    registry: Optional[ProjectRegistry] = None,
    notifier: Optional[ChangeNotifier] = None,
    watcher: Optional[TaskWatcher] = None,
) -> Flask:
    """Wire the store, registry, notifier and watcher into a Flask app.

    Anything not passed in is built from `cfg`. A configured tasks_dir pins
    the task root; otherwise it follows the registry's current project.
    """
    cfg = cfg or Config()
    registry = registry or ProjectRegistry(cfg.global_config)
    if store is None:
        if cfg.tasks_dir:
            store = TaskStore(cfg.tasks_dir)
        else:
            store = TaskStore(registry.tasks_dir)
    notifier = notifier or ChangeNotifier()

    app = Flask(__name__)
    app.extensions["mdkanban"] = {
        "store": store,
        "registry": registry,
        "notifier": notifier,
        "watcher": watcher,
    }

    # ── Errors ───────────────────────────────────────────────────────────

    @app.errorhandler(TaskNotFound)
    @app.errorhandler(ProjectNotFound)
    def not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(ValidationError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(Conflict)
    def conflict(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(OSError)
    def io_failure(e):
        logger.exception(f"Filesystem error handling {request.method} {request.path}")
        return jsonify({"error": "Filesystem error"}), 500

    # ── Tasks ────────────────────────────────────────────────────────────

    @app.route("/api/tasks", methods=["GET"])
    def api_list_tasks():
        return jsonify([t.to_dict() for t in store.list_all()])

    @app.route("/api/tasks", methods=["POST"])
    def api_create_task():
        task = store.create(_json_body())
        return jsonify(task.to_dict()), 201

    @app.route("/api/tasks/<status>/<filename>", methods=["PUT"])
    def api_update_task(status, filename):
        data = _json_body()
        # Validate the whole body before move() touches any file
        normalize_patch(data)
        target = data.get("status")
        # update() never relocates files, so a status change goes through move()
        if target is not None and TaskStatus.parse(target) != TaskStatus.parse(status):
            task = store.move(status, filename, target)
            rest = {k: v for k, v in data.items() if k != "status"}
            if rest:
                task = store.update(task.status, filename, rest)
        else:
            task = store.update(status, filename, data)
        return jsonify(task.to_dict())

    @app.route("/api/tasks/move", methods=["POST"])
    def api_move_task():
        data = _json_body()
        for key in ("fromStatus", "filename", "toStatus"):
            if not data.get(key):
                raise ValidationError(f"{key} is required")
        task = store.move(
            data["fromStatus"], data["filename"], data["toStatus"], data.get("position"),
        )
        return jsonify(task.to_dict())

    @app.route("/api/tasks/reorder", methods=["POST"])
    def api_reorder_tasks():
        data = _json_body()
        if not data.get("status"):
            raise ValidationError("status is required")
        tasks = store.reorder(data["status"], data.get("orderedIds"))
        return jsonify([t.to_dict() for t in tasks])

    @app.route("/api/tasks/<status>/<filename>", methods=["DELETE"])
    def api_delete_task(status, filename):
        store.delete(status, filename)
        return "", 204

    @app.route("/api/tasks/events")
    def api_events():
        sub = notifier.subscribe()
        return Response(
            notifier.stream(sub),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/api/tasks/config", methods=["GET"])
    def api_get_config():
        return jsonify(store.get_project_config())

    @app.route("/api/tasks/config", methods=["PUT"])
    def api_update_config():
        return jsonify(store.update_project_config(_json_body()))

    @app.route("/api/tasks/notes", methods=["GET"])
    def api_get_notes():
        return jsonify({"content": store.get_notes()})

    @app.route("/api/tasks/notes", methods=["PUT"])
    def api_update_notes():
        data = _json_body()
        return jsonify({"content": store.update_notes(data.get("content", ""))})

    # ── Projects ─────────────────────────────────────────────────────────

    @app.route("/api/projects", methods=["GET"])
    def api_list_projects():
        return jsonify(registry.list_projects())

    @app.route("/api/projects/current", methods=["GET"])
    def api_current_project():
        project = registry.current_project()
        if not project:
            return jsonify({"error": "No current project set"}), 404
        board_name = store.get_project_config().get("boardName")
        return jsonify({**project, "boardName": board_name})

    @app.route("/api/projects", methods=["POST"])
    def api_add_project():
        data = _json_body()
        project = registry.add_project(
            data.get("name"), data.get("path"), bool(data.get("createTasksDir")),
        )
        return jsonify(project), 201

    @app.route("/api/projects/validate-path", methods=["POST"])
    def api_validate_path():
        data = _json_body()
        if not data.get("path"):
            raise ValidationError("Path is required")
        return jsonify(validate_project_path(data["path"], False))

    @app.route("/api/projects/<project_id>", methods=["GET"])
    def api_get_project(project_id):
        return jsonify(registry.get_project(project_id))

    @app.route("/api/projects/<project_id>", methods=["PUT"])
    def api_update_project(project_id):
        data = _json_body()
        project = registry.update_project(project_id, data)
        if data.get("name"):
            # Keep the board title in that project's project.json in sync
            project_store = TaskStore(Path(project["path"]) / "tasks")
            project_store.update_project_config({"boardName": project["name"]})
        return jsonify(project)

    @app.route("/api/projects/<project_id>", methods=["DELETE"])
    def api_delete_project(project_id):
        registry.remove_project(project_id)
        return "", 204

    @app.route("/api/projects/<project_id>/switch", methods=["POST"])
    def api_switch_project(project_id):
        if cfg.tasks_dir:
            raise Conflict(
                f"Task root is pinned to {cfg.tasks_dir}; "
                "restart without --tasks-dir to switch projects"
            )
        project = registry.switch_project(project_id)
        store.ensure_directories()
        store.migrate_if_needed()
        if watcher is not None:
            watcher.switch_project(project_id, store.root)
        else:
            notifier.publish({"event": "project-switched", "projectId": project_id})
        board_name = store.get_project_config().get("boardName")
        return jsonify({**project, "boardName": board_name})

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", "tasksDir": str(store.root)})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Markdown Kanban Server")
    parser.add_argument("--config", default=None, help="Path to kanban.yaml")
    parser.add_argument("--host", default=None,
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--tasks-dir", default=None,
                        help="Task root (overrides KANBAN_TASKS_DIR and the project registry)")
    parser.add_argument("--no-watch", action="store_true", help="Disable the file watcher")
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    if args.host:
        cfg.host = args.host
    if args.port:
        cfg.port = args.port
    if args.tasks_dir:
        cfg.tasks_dir = str(Path(args.tasks_dir).expanduser())
    if args.no_watch:
        cfg.watch = False

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    registry = ProjectRegistry(cfg.global_config)
    registry.ensure()
    store = TaskStore(cfg.tasks_dir) if cfg.tasks_dir else TaskStore(registry.tasks_dir)
    store.ensure_directories()
    store.migrate_if_needed()
    logger.info(f"Task root: {store.root}")

    notifier = ChangeNotifier()
    watcher = TaskWatcher(notifier, store.root, cfg.debounce_ms) if cfg.watch else None
    if watcher:
        watcher.start()

    app = create_app(cfg, store=store, registry=registry, notifier=notifier, watcher=watcher)
    logger.info(f"Kanban API server running on http://{cfg.host}:{cfg.port}")
    try:
        app.run(host=cfg.host, port=cfg.port, debug=False, threaded=True)
    finally:
        if watcher:
            watcher.stop()


if __name__ == "__main__":
    main()
