from __future__ import annotations

import atexit
import sys
from pathlib import Path

from flask import Flask, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .game.registry import RoomRegistry
from .game.service import GameMachine
from .realtime.handlers import register_socketio_handlers
from .realtime.scheduler import DeadlineSweeper
from .routes.admin import bp as admin_bp
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp
from .routes.themes import bp as themes_bp


def _pick_async_mode(configured: str) -> str:
    if configured:
        return configured
    # Default choice:
    # - Windows: threading (eventlet has known compatibility issues on newer Python)
    # - Python >= 3.13: threading (safer default)
    # - Otherwise: eventlet
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(config_class=Config) -> tuple[Flask, SocketIO]:
    dist_dir = Path(__file__).resolve().parents[2] / "frontend" / "dist"

    static_folder = str(dist_dir) if dist_dir.exists() else None
    static_url_path = "/" if dist_dir.exists() else None

    app = Flask(
        __name__,
        static_folder=static_folder,
        static_url_path=static_url_path,
    )
    app.config.from_object(config_class)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=_pick_async_mode(app.config.get("SOCKETIO_ASYNC_MODE", "")),
    )

    registry = RoomRegistry(default_ruleset=app.config.get("DEFAULT_RULESET", "cooperative"))
    machine = GameMachine.from_config(app.config)
    sweeper = DeadlineSweeper(
        socketio,
        registry,
        machine,
        interval_sec=float(app.config.get("SWEEP_INTERVAL_SEC", 0.25)),
        idle_ttl_sec=int(app.config.get("ROOM_IDLE_TTL_SEC", 600)),
    )
    atexit.register(sweeper.stop)

    app.extensions["ito"] = {
        "registry": registry,
        "machine": machine,
        "sweeper": sweeper,
        "socketio": socketio,
    }

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")
    app.register_blueprint(themes_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")

    register_socketio_handlers(
        socketio,
        registry,
        machine,
        sweeper=sweeper if app.config.get("SCHEDULER_ENABLED", True) else None,
    )

    if dist_dir.exists():
        @app.get("/")
        def index():
            return send_from_directory(dist_dir, "index.html")

        @app.get("/<path:path>")
        def static_proxy(path: str):
            file_path = dist_dir / path
            if file_path.exists() and file_path.is_file():
                return send_from_directory(dist_dir, path)
            return send_from_directory(dist_dir, "index.html")

    return app, socketio
