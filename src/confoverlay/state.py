"""
Low-level IO for the .confoverlay/ directory.

All paths are relative to the current working directory so the tool
works correctly in any repo without configuration.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .exceptions import StoreError
from .models import CommonConfigStore, ErrorCode

logger = logging.getLogger(__name__)

# ── Directory / file paths (relative to CWD) ─────────────────────────────────

CONFOVERLAY_DIR = Path(".confoverlay")
SNIPPETS_FILE = CONFOVERLAY_DIR / "snippets.json"
LEGACY_FILE = CONFOVERLAY_DIR / "legacy.json"
REPO_CONFIG_FILE = CONFOVERLAY_DIR / "config.toml"

# User-global config (lower priority than repo config)
USER_CONFIG_FILE = Path.home() / ".config" / "confoverlay" / "config.toml"


# ── Directory management ──────────────────────────────────────────────────────


def ensure_dir() -> None:
    """Create .confoverlay/ if it doesn't exist."""
    CONFOVERLAY_DIR.mkdir(exist_ok=True)


def write_atomic(path: Path, content: str) -> None:
    """
    Replace `path` with `content` in one step so readers never see a
    half-written file. Raises StoreError on failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise StoreError(ErrorCode.STORE_ERROR, f"failed to write {path}: {exc}") from exc


# ── Snippet store ─────────────────────────────────────────────────────────────


def load_store() -> CommonConfigStore:
    """
    Load snippets.json from .confoverlay/.
    Returns an empty store if the file doesn't exist or is corrupt.
    """
    if not SNIPPETS_FILE.exists():
        return CommonConfigStore()
    try:
        return CommonConfigStore.model_validate_json(SNIPPETS_FILE.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        # Corrupt / schema-changed store: start fresh rather than crash
        logger.warning("Ignoring unreadable snippet store %s: %s", SNIPPETS_FILE, exc)
        return CommonConfigStore()


def save_store(store: CommonConfigStore) -> None:
    """Persist the store to .confoverlay/snippets.json, updating updated_at."""
    ensure_dir()
    store.updated_at = datetime.now(timezone.utc)
    write_atomic(SNIPPETS_FILE, store.model_dump_json(indent=2))


# ── Legacy snippet storage ────────────────────────────────────────────────────


def load_legacy_store() -> dict[str, str]:
    """
    Return the pre-store snippet map from .confoverlay/legacy.json, keyed by
    legacy storage key. Missing or invalid files are treated as empty.
    """
    if not LEGACY_FILE.exists():
        return {}
    try:
        loaded = json.loads(LEGACY_FILE.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    if not isinstance(loaded, dict):
        return {}
    return {k: v for k, v in loaded.items() if isinstance(v, str)}


def save_legacy_store(entries: dict[str, str]) -> None:
    """Rewrite legacy.json, deleting it once no entries are left."""
    if not entries:
        LEGACY_FILE.unlink(missing_ok=True)
        return
    ensure_dir()
    write_atomic(LEGACY_FILE, json.dumps(entries, ensure_ascii=False, indent=2))


# ── Reset ─────────────────────────────────────────────────────────────────────


def clear_confoverlay() -> None:
    """Delete the entire .confoverlay/ directory (used by `confoverlay reset`)."""
    if CONFOVERLAY_DIR.exists():
        shutil.rmtree(CONFOVERLAY_DIR)


def read_text_file(path: Path) -> Optional[str]:
    """Return the file's text, or None if it doesn't exist."""
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")
