"""
RunLock - single-writer guard for the state document.

Two overlapping invocations would both load, mutate and save the same
state and could place the same orders twice. The lock is an advisory
exclusive flock on a sidecar file; the kernel releases it if the process
dies, so a crashed run never leaves a stale lock behind.
"""

import fcntl
import os
from pathlib import Path
from typing import Any

from ladderbot.core.exceptions import RunLockError
from ladderbot.utils.logger import get_logger

logger = get_logger(__name__)


class RunLock:
    """
    Non-blocking exclusive lock held for the duration of one invocation.

    Usage:
        with RunLock(Path("state.json.lock")):
            ...
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._fd: int | None = None

    @classmethod
    def for_state_file(cls, state_file: Path) -> "RunLock":
        state_file = Path(state_file)
        return cls(state_file.with_name(state_file.name + ".lock"))

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """
        Acquire the lock without waiting.

        Raises:
            RunLockError: If another process holds the lock
        """
        if self._fd is not None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            logger.error("Run lock is held by another invocation", path=str(self.path))
            raise RunLockError(f"Another invocation holds {self.path}") from e

        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._fd = fd
        logger.debug("Run lock acquired", path=str(self.path), pid=os.getpid())

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug("Run lock released", path=str(self.path))

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()
