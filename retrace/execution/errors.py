# retrace/execution/errors.py
"""
Exceptions raised by the checkpoint and rollback stores.
"""
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from retrace.execution.models import RollbackResult


class RollbackError(Exception):
    """Base class for checkpoint and rollback errors."""
    pass


class PersistenceError(RollbackError):
    """A checkpoint, log or backup could not be read or written.

    Fatal for the current step: the rollback safety net is compromised.
    """
    pass


class CheckpointNotFoundError(PersistenceError):
    """No checkpoint was persisted for the requested pipeline and step."""

    def __init__(self, pipeline_id: str, step_id: str):
        self.pipeline_id = pipeline_id
        self.step_id = step_id
        super().__init__(f"No checkpoint for pipeline '{pipeline_id}' at step '{step_id}'")


class RollbackLogNotFoundError(PersistenceError):
    """The pipeline never initialized a rollback log."""

    def __init__(self, pipeline_id: str):
        self.pipeline_id = pipeline_id
        super().__init__(f"No rollback log for pipeline '{pipeline_id}'")


class CorruptRecordError(PersistenceError):
    """A stored record exists but cannot be decoded."""
    pass


class InvalidOperationError(RollbackError):
    """An operation record is inconsistent and was refused."""
    pass


class RollbackExecutionError(RollbackError):
    """Rollback finished with failures or with operations left for manual follow-up.

    Every eligible operation was attempted; ``result`` tells what happened to each.
    """

    def __init__(self, result: "RollbackResult"):
        self.result = result
        super().__init__(self._summarize(result))

    @staticmethod
    def _summarize(result: "RollbackResult") -> str:
        parts = [f"rollback of pipeline '{result.pipeline_id}' incomplete"]
        if result.errors:
            parts.append(f"{len(result.errors)} operation(s) failed to revert")
        if result.manual:
            parts.append(f"{len(result.manual)} operation(s) require manual intervention")
        lines = [", ".join(parts)]
        lines.extend(f"  - {error}" for error in result.errors)
        lines.extend(
            f"  - manual: [{op.type_name}] {op.target}" for op in result.manual
        )
        return "\n".join(lines)
