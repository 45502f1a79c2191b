"""
StateStore - load/save boundary for the run state document.

The store is purely mechanical: it never repairs or reinterprets state.
A corrupt file is fatal because discarding tracked order ids could leave
live orders on the exchange that nothing follows anymore.
"""

import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ladderbot.core.exceptions import StateCorruptedError, StateWriteError
from ladderbot.core.models import RunState
from ladderbot.utils.logger import LoggerMixin


class StateStore(LoggerMixin):
    """JSON file persistence for RunState with atomic replace on save."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._save_count = 0

    @property
    def save_count(self) -> int:
        """Number of successful saves through this store instance."""
        return self._save_count

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> RunState:
        """
        Load the run state.

        Returns:
            The persisted RunState, or a fresh IDLE state if no file exists

        Raises:
            StateCorruptedError: If the file exists but cannot be parsed or
                does not match the current schema
        """
        if not self.path.exists():
            self.logger.info("No state file, starting idle", path=str(self.path))
            return RunState.idle()

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateCorruptedError(f"Cannot read state file {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger.error("State file is not valid JSON", path=str(self.path), error=str(e))
            raise StateCorruptedError(f"State file {self.path} is not valid JSON: {e}") from e

        try:
            state = RunState.model_validate(data)
        except ValidationError as e:
            self.logger.error("State file failed validation", path=str(self.path), error=str(e))
            raise StateCorruptedError(f"State file {self.path} failed validation: {e}") from e

        self.logger.debug("State loaded", path=str(self.path), status=state.status.value)
        return state

    def save(self, state: RunState) -> None:
        """
        Persist the run state atomically.

        The document is written to a temporary file in the same directory,
        fsynced, then renamed over the previous file.

        Raises:
            StateWriteError: If the write cannot complete
        """
        payload = json.dumps(state.model_dump(mode="json"), indent=2)
        directory = self.path.parent
        tmp_name: str | None = None

        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            self.logger.error("Failed to save state", path=str(self.path), error=str(e))
            raise StateWriteError(f"Cannot write state file {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        self._save_count += 1
        self.logger.debug("State saved", path=str(self.path), status=state.status.value)
