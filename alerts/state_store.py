"""Persistent alert state - survives monitor restarts.

Stores: state key ("claude:5-hour") → tiers already alerted this climb.
One monitor process per config directory; there is no locking.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from errors import StateCorruptionError
from logger import logger
from .engine import AlertState, copy_state, state_key
from .thresholds import TIERS

# Keys written before multi-provider support had no provider prefix
LEGACY_PROVIDER = "claude"


class AlertStateStore(ABC):
    """Narrow load/save/reset interface over the alert state."""

    @abstractmethod
    def load(self) -> AlertState:
        """Current state; empty if nothing usable is stored."""
        pass

    @abstractmethod
    def save(self, state: AlertState) -> None:
        """Replace the stored state."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Forget everything."""
        pass


class MemoryAlertStateStore(AlertStateStore):
    """Keeps state in memory only (tests, dry runs)."""

    def __init__(self, state: AlertState = None):
        self._state = copy_state(state or {})

    def load(self) -> AlertState:
        return copy_state(self._state)

    def save(self, state: AlertState) -> None:
        self._state = copy_state(state)

    def reset(self) -> None:
        self._state = {}


class FileAlertStateStore(AlertStateStore):
    """JSON file holding ``{key: [tiers, ...]}``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> AlertState:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return _decode(raw, self.path)
        except (OSError, ValueError, StateCorruptionError) as e:
            error = e if isinstance(e, StateCorruptionError) else StateCorruptionError(self.path, str(e))
            logger.warning(f"{error} - starting with empty alert state")
            return {}

    def save(self, state: AlertState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        payload = json.dumps(_encode(state), indent=2)

        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def reset(self) -> None:
        try:
            self.path.unlink()
            logger.info(f"Alert state reset ({self.path})")
        except FileNotFoundError:
            pass


def _encode(state: AlertState) -> dict[str, list[int]]:
    return {key: sorted(tiers, reverse=True) for key, tiers in sorted(state.items())}


def _decode(raw, path: Path) -> AlertState:
    if not isinstance(raw, dict):
        raise StateCorruptionError(path, f"expected an object, got {type(raw).__name__}")

    state: AlertState = {}
    for key, tiers in raw.items():
        if not isinstance(tiers, list):
            raise StateCorruptionError(path, f"tiers for {key!r} are not a list")
        if ":" not in key:
            key = state_key(LEGACY_PROVIDER, key)
        valid = {t for t in tiers if isinstance(t, int) and not isinstance(t, bool) and t in TIERS}
        state[key] = state.get(key, set()) | valid
    return state
