"""
Runtime configuration read from environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List

# Server binding
HOST = os.getenv("HOST", "localhost")
PORT = int(os.getenv("PORT", "3030"))

# Debug flag exposes /docs and exception details on 500 responses
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Optional JSON files read once at startup
SEED_PATH = os.getenv("SEED_PATH", "")
RULES_PATH = os.getenv("RULES_PATH", "")

# Transport headers
ADMIN_HEADER = os.getenv("ADMIN_HEADER", "X-Admin")
AUTH_HEADER = os.getenv("AUTH_HEADER", "X-Authorization")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Version string
VERSION = "1.0.0"

# Collection served from the protected store when joined through ?load=
PRINCIPAL_COLLECTION = "users"
SESSIONS_COLLECTION = "sessions"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def _read_json(path: str) -> Dict[str, Any]:
    if not path:
        return {}

    file_path = Path(path)
    try:
        content = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Could not load JSON from {file_path}: {e}") from e

    if not isinstance(content, dict):
        raise ValueError(f"Expected a JSON object at top level of {file_path}")
    return content


def load_seed_data(path: str = None) -> Dict[str, Any]:
    """Load the seed file: {"data": {...}, "users": {...}, "jsonstore": {...}}. Empty when unset."""
    return _read_json(SEED_PATH if path is None else path)


def load_rules(path: str = None) -> Dict[str, Any]:
    """Load the access rules file. Empty when unset."""
    return _read_json(RULES_PATH if path is None else path)


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if not 0 < PORT < 65536:
        issues.append(f"Invalid PORT: {PORT}")

    if LOG_LEVEL not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        issues.append(f"Invalid LOG_LEVEL: {LOG_LEVEL}")

    for name, path in (("SEED_PATH", SEED_PATH), ("RULES_PATH", RULES_PATH)):
        if path and not Path(path).is_file():
            issues.append(f"{name} does not point to a file: {path}")

    if ADMIN_HEADER.lower() == AUTH_HEADER.lower():
        issues.append("ADMIN_HEADER and AUTH_HEADER must differ")

    return issues
