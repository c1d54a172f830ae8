"""Persistent per-instance state shared between CLI runs."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterator, MutableMapping, Optional

logger = logging.getLogger(__name__)

STATE_DIR_POSIX = Path("~/.local/state/ephstack").expanduser()
STATE_DIR_WINDOWS = Path("%LOCALAPPDATA%/ephstack").expanduser()


def default_state_dir() -> Path:
    """Return platform-aware state directory path."""
    override = os.getenv("EPHSTACK_STATE_DIR")
    if override:
        return Path(override).expanduser()
    if Path.home().drive:
        # Windows path detection
        return STATE_DIR_WINDOWS
    return STATE_DIR_POSIX


def ensure_state_dir(path: Optional[Path] = None) -> Path:
    """Create state directory if missing and return its path."""
    target = path or default_state_dir()
    target.mkdir(parents=True, exist_ok=True)
    return target


def state_file(instance: str, directory: Optional[Path] = None) -> Path:
    """Return full Path for the state file of an instance."""
    folder = ensure_state_dir(directory)
    return folder / f"{instance}.json"


class InstanceState(MutableMapping[str, str]):
    """JSON-backed mapping persisted on every modification."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._data: dict[str, str] = self._load()

    @classmethod
    def for_instance(cls, instance: str, directory: Optional[Path] = None) -> "InstanceState":
        return cls(state_file(instance, directory))

    @property
    def path(self) -> Path:
        return self._path

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"InstanceState(path={self._path!s}, data={self._data!r})"

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable state file", extra={"path": str(self._path), "error": str(exc)})
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(k): str(v) for k, v in payload.items() if v is not None}

    def _flush(self) -> None:
        if not self._data:
            self._path.unlink(missing_ok=True)
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
