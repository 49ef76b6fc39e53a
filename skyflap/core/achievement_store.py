"""
Achievement Store
=================

Storage backends for the persisted achievement blob, plus the versioned
schema migration applied on load.

Blob layout (version 1):
    {
        "version": 1,
        "achievements": {id: {"unlocked", "progress", "unlockedAt"}},
        "progress": {...counters...},
        "notifications": [...],
        "totalAchievementPoints": int,
        "unlockedCount": int,
        "lastUpdated": ms timestamp
    }
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

Blob = Dict[str, Any]


class PersistenceError(RuntimeError):
    """Storage unavailable, unreadable, or holding a corrupt blob."""


class AchievementStore(ABC):
    """Abstract key-value persistence for one achievement blob."""

    @abstractmethod
    def load(self) -> Optional[Blob]:
        """
        Read the stored blob.

        Returns:
            The blob, or None if nothing has been saved yet.

        Raises:
            PersistenceError: If stored data can't be read or parsed.
        """

    @abstractmethod
    def save(self, blob: Blob) -> None:
        """
        Write the blob.

        Raises:
            PersistenceError: If the write fails.
        """


class MemoryStore(AchievementStore):
    """In-process store. Keeps a deep copy so callers can't alias saved state."""

    def __init__(self, blob: Optional[Blob] = None):
        self._blob = copy.deepcopy(blob)
        self.save_count = 0

    def load(self) -> Optional[Blob]:
        return copy.deepcopy(self._blob)

    def save(self, blob: Blob) -> None:
        self._blob = copy.deepcopy(blob)
        self.save_count += 1


class JsonFileStore(AchievementStore):
    """JSON file store; writes go to a temp file that replaces the target."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[Blob]:
        if not self._path.exists():
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {self._path}: {e}") from e

    def save(self, blob: Blob) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._path.parent), prefix=self._path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(blob, f, indent=2)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self._path}: {e}") from e


def migrate_blob(blob: Any) -> Blob:
    """
    Upgrade a stored blob to the current schema version.

    Unversioned blobs have the legacy layout (same fields, no version key)
    and are upgraded in place. Shape checks are limited to container types;
    field values are validated when the engine merges the blob.

    Args:
        blob: Raw decoded blob.

    Returns:
        A blob at SCHEMA_VERSION.

    Raises:
        PersistenceError: If the blob is malformed or from a newer version.
    """
    if not isinstance(blob, dict):
        raise PersistenceError(f"Blob must be an object, got {type(blob).__name__}")

    version = blob.get("version", 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise PersistenceError(f"Invalid blob version: {version!r}")
    if version > SCHEMA_VERSION:
        raise PersistenceError(
            f"Blob version {version} is newer than supported version {SCHEMA_VERSION}"
        )

    for key, expected in (("achievements", dict), ("progress", dict), ("notifications", list)):
        if key in blob and not isinstance(blob[key], expected):
            raise PersistenceError(f"Blob field '{key}' must be {expected.__name__}")

    migrated = dict(blob)
    if version == 0:
        logger.info("Migrating legacy achievement blob to version %d", SCHEMA_VERSION)
        migrated.setdefault("achievements", {})
        migrated.setdefault("progress", {})
        migrated.setdefault("notifications", [])
        migrated["version"] = SCHEMA_VERSION

    return migrated
