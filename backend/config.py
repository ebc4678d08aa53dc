"""Application configuration."""

import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("DATA_DIR", str(Path(__file__).parent.parent / "data")))
DATA_DIR.mkdir(parents=True, exist_ok=True)

FILES_DIR = Path(os.environ.get("FILES_DIR", str(DATA_DIR / "files")))
FILES_DIR.mkdir(parents=True, exist_ok=True)

DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DATA_DIR}/anonlink.db")

# Owner bearer tokens are signed with this key
SECRET_KEY = os.environ.get("SECRET_KEY", "change-me").strip()

# Upload limits
MAX_UPLOAD_SIZE = os.environ.get("MAX_UPLOAD_SIZE", "100MB")
DEFAULT_EXPIRY = os.environ.get("DEFAULT_EXPIRY", "24h").strip()
MAX_EXPIRY = os.environ.get("MAX_EXPIRY", "7d").strip()

# Lifecycle
DELETE_ON_EXHAUSTION = os.environ.get("DELETE_ON_EXHAUSTION", "false").lower() in ("1", "true", "yes")
REGENERATE_MAX_ATTEMPTS = int(os.environ.get("REGENERATE_MAX_ATTEMPTS", "3"))

# Reaper
CLEANUP_INTERVAL = int(os.environ.get("CLEANUP_INTERVAL", "3600"))
ORPHAN_GRACE_SECONDS = int(os.environ.get("ORPHAN_GRACE_SECONDS", "3600"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
