# retrace/execution/operation_log.py
"""
Append-only rollback log, one JSON document per pipeline.

Appends are read-modify-write of the whole document under the pipeline lock;
the rewrite is atomic, so a crash leaves either the old or the new log.
"""
from pydantic import ValidationError as PydanticValidationError

from retrace.execution.errors import (
    CorruptRecordError,
    PersistenceError,
    RollbackLogNotFoundError,
)
from retrace.execution.models import RollbackLog, RollbackOperation, utc_now
from retrace.execution.storage import PipelineLock, StateLayout, atomic_write_text
from retrace.utils.logging import get_logger

logger = get_logger(__name__)


class RollbackLogStore:
    """Reads and appends to per-pipeline rollback logs."""

    def __init__(self, layout: StateLayout):
        self.layout = layout

    def lock(self, pipeline_id: str) -> PipelineLock:
        return PipelineLock(self.layout.lock_path(pipeline_id))

    def load(self, pipeline_id: str) -> RollbackLog:
        """
        Deserialize the pipeline's log.

        Raises:
            RollbackLogNotFoundError: If the log was never initialized.
            CorruptRecordError: If the log cannot be decoded.
        """
        path = self.layout.rollback_log_path(pipeline_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as e:
            raise RollbackLogNotFoundError(pipeline_id) from e
        except OSError as e:
            raise PersistenceError(f"Failed to read rollback log {path}: {e}") from e

        try:
            return RollbackLog.model_validate_json(raw)
        except PydanticValidationError as e:
            raise CorruptRecordError(f"Rollback log {path} is corrupt: {e}") from e

    def save(self, log: RollbackLog) -> None:
        atomic_write_text(self.layout.rollback_log_path(log.pipeline_id), log.model_dump_json(indent=2))

    def init(self, pipeline_id: str) -> RollbackLog:
        """Return the existing log, or persist and return a new empty one."""
        with self.lock(pipeline_id):
            try:
                return self.load(pipeline_id)
            except RollbackLogNotFoundError:
                pass

            log = RollbackLog(pipeline_id=pipeline_id, start_time=utc_now())
            self.save(log)
            logger.info(f"Initialized rollback log for pipeline {pipeline_id}")
            return log

    def append(self, pipeline_id: str, operation: RollbackOperation) -> RollbackOperation:
        """
        Durably append one operation, stamping its sequence and timestamp.

        Returns:
            The operation as stored.
        """
        with self.lock(pipeline_id):
            try:
                log = self.load(pipeline_id)
            except RollbackLogNotFoundError:
                log = RollbackLog(pipeline_id=pipeline_id, start_time=utc_now())

            stored = operation.model_copy(deep=True)
            stored.sequence = log.next_sequence
            if stored.timestamp is None:
                stored.timestamp = utc_now()

            log.operations.append(stored)
            log.next_sequence += 1
            self.save(log)

        logger.debug(f"Recorded operation #{stored.sequence} for {pipeline_id}: {stored.describe()}")
        return stored
