import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Admin endpoints (disabled when empty)
    ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Game
    DEFAULT_RULESET = os.environ.get("DEFAULT_RULESET", "cooperative")
    REVEAL_DURATION_SEC = int(os.environ.get("REVEAL_DURATION_SEC", "5"))
    THEME_CHOICES_COUNT = int(os.environ.get("THEME_CHOICES_COUNT", "3"))
    METAPHOR_MAX_LENGTH = int(os.environ.get("METAPHOR_MAX_LENGTH", "50"))

    # Deadline sweep
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"
    SWEEP_INTERVAL_SEC = float(os.environ.get("SWEEP_INTERVAL_SEC", "0.25"))
    ROOM_IDLE_TTL_SEC = int(os.environ.get("ROOM_IDLE_TTL_SEC", "600"))
