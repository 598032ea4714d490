"""
Configuration module for the attestation registry.

Centralizes all configuration with environment variable support
and validation.
"""

import os
from pathlib import Path
from typing import Dict

from .errors import ValidationError
from .store import InMemoryRecordStore, RecordStore, SqliteRecordStore
from .types import decode_key
from .util import sha256_bytes

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("ATTESTATION_ENV", "dev")  # dev|stage|prod

# Storage
STORE_BACKEND = os.getenv("ATTESTATION_STORE", "sqlite")  # sqlite|memory
DB_PATH = os.getenv("ATTESTATION_DB_PATH", "data/attestations.db")

# Deployment identity (base64, 32 bytes). Empty means the fixed dev id.
PROGRAM_ID = os.getenv("ATTESTATION_PROGRAM_ID", "")
DEV_PROGRAM_ID = sha256_bytes("attestation_registry:dev")

# Accepted distance between a request's issued_at and the trusted clock
MAX_CLOCK_SKEW_SECONDS = int(os.getenv("MAX_CLOCK_SKEW_SECONDS", "300"))

# Logging
LOG_LEVEL = os.getenv("ATTESTATION_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("ATTESTATION_LOG_JSON", "true").lower() in ("1", "true", "yes")


def program_id_bytes() -> bytes:
    """Decode the configured program id, falling back to the dev id."""
    if not PROGRAM_ID:
        return DEV_PROGRAM_ID
    return decode_key(PROGRAM_ID, "ATTESTATION_PROGRAM_ID")


def get_store() -> RecordStore:
    """Build the record store selected by ATTESTATION_STORE."""
    if STORE_BACKEND == "memory":
        return InMemoryRecordStore()
    if STORE_BACKEND == "sqlite":
        return SqliteRecordStore(DB_PATH)
    raise ValidationError("ATTESTATION_STORE", f"unknown store backend {STORE_BACKEND!r}")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Check the configuration for obvious mistakes.
    Returns dict of check name -> passed.
    """
    try:
        program_id_bytes()
        program_id_ok = True
    except ValidationError:
        program_id_ok = False

    checks = {
        "store_backend": STORE_BACKEND in ("sqlite", "memory"),
        "program_id": program_id_ok,
        "clock_skew": MAX_CLOCK_SKEW_SECONDS > 0,
    }
    if STORE_BACKEND == "sqlite":
        parent = Path(DB_PATH).parent
        checks["db_dir"] = not parent.exists() or os.access(parent, os.W_OK)
    if is_production():
        checks["explicit_program_id"] = bool(PROGRAM_ID)
    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("ATTESTATION_DEBUG", "").lower() in ("1", "true", "yes")
