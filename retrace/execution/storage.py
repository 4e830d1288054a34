# retrace/execution/storage.py
"""
On-disk layout and durability helpers shared by the rollback stores.

Every record is written to a temporary file in the destination directory,
fsynced and moved into place with os.replace(), so readers only ever see a
complete old or new version.
"""
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Union

try:
    import fcntl  # POSIX only
except ImportError:  # pragma: no cover
    fcntl = None

from retrace.constants import (
    BACKUPS_DIRNAME,
    CHECKPOINTS_DIRNAME,
    LOCK_FILENAME,
    ROLLBACK_LOG_FILENAME,
)
from retrace.execution.errors import PersistenceError
from retrace.utils.logging import get_logger

logger = get_logger(__name__)


def validate_identifier(value: str, kind: str = "identifier") -> str:
    """Reject ids that are empty or would escape their directory."""
    if not value or not value.strip():
        raise ValueError(f"{kind} must not be empty")
    if value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValueError(f"invalid {kind}: {value!r}")
    return value


class StateLayout:
    """Paths of everything persisted under one base directory."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    def pipeline_dir(self, pipeline_id: str) -> Path:
        return self.base_dir / validate_identifier(pipeline_id, "pipeline id")

    def checkpoints_dir(self, pipeline_id: str) -> Path:
        return self.pipeline_dir(pipeline_id) / CHECKPOINTS_DIRNAME

    def checkpoint_path(self, pipeline_id: str, step_id: str) -> Path:
        return self.checkpoints_dir(pipeline_id) / f"{validate_identifier(step_id, 'step id')}.json"

    def rollback_log_path(self, pipeline_id: str) -> Path:
        return self.pipeline_dir(pipeline_id) / ROLLBACK_LOG_FILENAME

    def backups_dir(self, pipeline_id: str) -> Path:
        return self.pipeline_dir(pipeline_id) / BACKUPS_DIRNAME

    def lock_path(self, pipeline_id: str) -> Path:
        return self.pipeline_dir(pipeline_id) / LOCK_FILENAME


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Write ``data`` to ``path`` so that the file is either fully replaced or untouched.

    Raises:
        PersistenceError: If the directory cannot be created or the write fails.
    """
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)

    _fsync_directory(path.parent)


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def _fsync_directory(directory: Path) -> None:
    # Not every platform or filesystem allows opening a directory for fsync
    try:
        dirfd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dirfd)
    except OSError as e:
        logger.debug(f"Directory fsync not supported for {directory}: {e}")
    finally:
        os.close(dirfd)


class _LockState:
    def __init__(self):
        self.thread_lock = threading.RLock()
        self.fp = None
        self.depth = 0


# One lock state per lock file, shared by every manager instance in the process
_lock_states: Dict[str, _LockState] = {}
_lock_states_guard = threading.Lock()


def _lock_state_for(path: Path) -> _LockState:
    key = str(path.resolve())
    with _lock_states_guard:
        state = _lock_states.get(key)
        if state is None:
            state = _LockState()
            _lock_states[key] = state
        return state


def forget_lock(lock_path: Path) -> None:
    """Drop the lock state of a removed pipeline unless someone still holds it."""
    key = str(lock_path.resolve())
    with _lock_states_guard:
        state = _lock_states.get(key)
        if state is None:
            return
        if state.thread_lock.acquire(blocking=False):
            try:
                if state.depth == 0:
                    del _lock_states[key]
            finally:
                state.thread_lock.release()


class PipelineLock:
    """
    Exclusive per-pipeline lock.

    Serializes threads through an in-process RLock and processes through
    flock() on ``<pipeline>/.lock``. Re-entrant within a thread, so a locked
    section may call other locked operations of the same pipeline.
    """

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self._state = None

    def acquire(self) -> None:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create pipeline directory {self.lock_path.parent}: {e}") from e

        state = _lock_state_for(self.lock_path)
        state.thread_lock.acquire()
        if state.depth == 0 and fcntl is not None:
            fp = None
            try:
                fp = open(self.lock_path, "a+")
                fcntl.flock(fp.fileno(), fcntl.LOCK_EX)
            except OSError as e:
                if fp is not None:
                    fp.close()
                state.thread_lock.release()
                raise PersistenceError(f"Failed to lock {self.lock_path}: {e}") from e
            state.fp = fp
            logger.debug(f"Acquired pipeline lock: {self.lock_path}")
        state.depth += 1
        self._state = state

    def release(self) -> None:
        state = self._state
        state.depth -= 1
        if state.depth == 0 and state.fp is not None:
            fcntl.flock(state.fp.fileno(), fcntl.LOCK_UN)
            state.fp.close()
            state.fp = None
        self._state = None
        state.thread_lock.release()

    def __enter__(self) -> "PipelineLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
