# retrace/execution/rollback.py
"""
Checkpoint and rollback manager for multi-step pipelines.

The manager owns everything under its state directory, one subdirectory per
pipeline:

    <state_dir>/<pipeline_id>/checkpoints/<step_id>.json
    <state_dir>/<pipeline_id>/rollback_log.json
    <state_dir>/<pipeline_id>/backups/<seq>-<timestamp>-<encoded-path>

The executor backs up a file before mutating it, logs every mutation, and
takes checkpoints between steps. When a step fails its contract the manager
reverts logged operations newest first, either all of them or only those
recorded after a checkpoint. Operations that cannot be undone mechanically
(commits, pushed changes) are never attempted; they are reported for manual
follow-up.
"""
import shutil
from pathlib import Path
from typing import Callable, Dict, Any, Optional, List, Union

from retrace.config import config_manager
from retrace.execution.backups import BackupStore
from retrace.execution.checkpoints import CheckpointStore
from retrace.execution.errors import (
    InvalidOperationError,
    PersistenceError,
    RollbackError,
    RollbackExecutionError,
    RollbackLogNotFoundError,
)
from retrace.execution.models import (
    Checkpoint,
    OperationType,
    RollbackLog,
    RollbackOperation,
    RollbackResult,
)
from retrace.execution.operation_log import RollbackLogStore
from retrace.execution.storage import StateLayout, atomic_write_bytes, forget_lock
from retrace.utils.logging import get_logger

logger = get_logger(__name__)


class RollbackManager:
    """Coordinates checkpoints, the rollback log and backups for each pipeline."""

    def __init__(self, state_dir: Union[str, Path]):
        """
        Initialize the rollback manager.

        Args:
            state_dir: Base directory for all persisted pipeline state.
        """
        self.layout = StateLayout(state_dir)
        self.backups = BackupStore(self.layout)
        self.checkpoints = CheckpointStore(self.layout)
        self.log_store = RollbackLogStore(self.layout)
        self._reverters: Dict[OperationType, Callable[[RollbackOperation], Optional[str]]] = {
            OperationType.FILE_CREATED: self._revert_file_created,
            OperationType.FILE_MODIFIED: self._revert_file_modified,
            OperationType.FILE_DELETED: self._revert_file_deleted,
        }

    @property
    def state_dir(self) -> Path:
        return self.layout.base_dir

    # Checkpoints

    def create_checkpoint(
        self,
        pipeline_id: str,
        step_id: str,
        workspace_path: Union[str, Path],
        artifacts: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Checkpoint:
        """
        Save the current state of a pipeline as a rollback target.

        An existing checkpoint for the same step is replaced.

        Args:
            pipeline_id: The pipeline being checkpointed.
            step_id: The step the checkpoint belongs to.
            workspace_path: The pipeline's workspace.
            artifacts: Artifact name to file path for outputs produced so far.
            metadata: Extra information stored with the checkpoint.

        Returns:
            The persisted checkpoint.

        Raises:
            PersistenceError: If the checkpoint could not be written.
        """
        with self.log_store.lock(pipeline_id):
            try:
                sequence = self.log_store.load(pipeline_id).last_sequence
            except RollbackLogNotFoundError:
                sequence = 0

            return self.checkpoints.create_checkpoint(
                pipeline_id,
                step_id,
                str(workspace_path),
                artifacts=artifacts,
                metadata=metadata,
                sequence=sequence,
            )

    def load_checkpoint(self, pipeline_id: str, step_id: str) -> Checkpoint:
        """Load a previously saved checkpoint."""
        return self.checkpoints.load_checkpoint(pipeline_id, step_id)

    def list_checkpoints(self, pipeline_id: str) -> List[Checkpoint]:
        """All checkpoints of a pipeline, oldest first."""
        return self.checkpoints.list_checkpoints(pipeline_id)

    # Rollback log

    def init_rollback_log(self, pipeline_id: str) -> RollbackLog:
        """
        Make sure a rollback log exists for the pipeline.

        An existing log is returned unchanged, so a restarted pipeline keeps
        its history.
        """
        return self.log_store.init(pipeline_id)

    def load_rollback_log(self, pipeline_id: str) -> RollbackLog:
        """Load the pipeline's rollback log as currently persisted."""
        return self.log_store.load(pipeline_id)

    def log_operation(self, pipeline_id: str, operation: RollbackOperation) -> RollbackOperation:
        """
        Record an operation that may need to be rolled back.

        Call this before performing the mutation: an unlogged mutation cannot
        be undone.

        Args:
            pipeline_id: The pipeline performing the operation.
            operation: The operation; ``timestamp`` defaults to now.

        Returns:
            The operation as stored, with its sequence number.

        Raises:
            InvalidOperationError: If a revertible ``file_modified`` has no backup.
            PersistenceError: If the log cannot be read or rewritten.
        """
        if (
            operation.can_revert
            and operation.operation_type == OperationType.FILE_MODIFIED
            and not operation.backup
        ):
            raise InvalidOperationError(
                f"Revertible file_modified operation on {operation.target} requires a backup"
            )
        return self.log_store.append(pipeline_id, operation)

    # Backups

    def create_backup(self, pipeline_id: str, file_path: Union[str, Path]) -> Path:
        """Copy a file's current content into the pipeline's backup directory."""
        return self.backups.create_backup(pipeline_id, file_path)

    # Planning

    def get_rollback_plan(self, pipeline_id: str) -> str:
        """
        Render a human-readable report of what a rollback would involve.

        Returns:
            The plan text.

        Raises:
            RollbackLogNotFoundError: If the pipeline has no rollback log.
        """
        log = self.log_store.load(pipeline_id)

        lines = [
            f"Rollback Plan for Pipeline: {pipeline_id}",
            f"Started: {log.start_time.isoformat()}",
            "",
        ]

        if not log.operations:
            lines.append("No operations recorded.")
            lines.append("")
        else:
            lines.append("Operations (chronological; rollback reverts them newest first):")
            lines.append("")
            for index, op in enumerate(log.operations, start=1):
                lines.append(f"{index}. [{op.type}] {op.target}")
                if not op.can_revert:
                    lines.append("   ! Requires manual intervention")
                    if op.revert_steps:
                        lines.append("   Steps:")
                        lines.extend(f"   - {step}" for step in op.revert_steps)
                else:
                    lines.append("   Can be automatically reverted")
                lines.append("")

        checkpoints = self.checkpoints.list_checkpoints(pipeline_id)
        if checkpoints:
            lines.append("Available Checkpoints:")
            for index, cp in enumerate(checkpoints, start=1):
                lines.append(f"{index}. Step: {cp.step_id} (at {cp.timestamp.isoformat()})")

        return "\n".join(lines).rstrip() + "\n"

    # Execution

    def rollback(self, pipeline_id: str, checkpoint: Optional[Checkpoint] = None) -> RollbackResult:
        """
        Revert logged operations, newest first.

        Without a checkpoint the whole log is reverted. With one, only
        operations recorded after it are; earlier ones belong to an accepted
        state and are kept.

        Reverting is best effort: a failing operation does not stop the
        others.

        Args:
            pipeline_id: The pipeline to roll back.
            checkpoint: Optional rollback target.

        Returns:
            The rollback result when every selected operation was reverted.

        Raises:
            RollbackLogNotFoundError: If the pipeline has no rollback log.
            RollbackExecutionError: If any operation failed to revert or needs
                manual follow-up. Carries the full result.
        """
        log = self.log_store.load(pipeline_id)
        log_ctx = logger.with_context(pipeline_id=pipeline_id)

        result = RollbackResult(
            pipeline_id=pipeline_id,
            checkpoint_step=checkpoint.step_id if checkpoint else None,
        )

        selected = []
        for op in log.operations:
            if checkpoint is None or self._is_after_checkpoint(op, checkpoint):
                selected.append(op)
            else:
                result.kept.append(op)

        # Insertion order is chronological order
        for op in reversed(selected):
            if not op.can_revert:
                log_ctx.warning(f"Skipping {op.describe()}: requires manual intervention")
                result.manual.append(op)
                continue

            try:
                warning = self._revert_operation(op)
            except (RollbackError, OSError) as e:
                log_ctx.error(f"Failed to revert {op.describe()}: {e}")
                result.errors.append(f"failed to revert {op.describe()}: {e}")
                continue

            if warning:
                log_ctx.warning(warning)
                result.warnings.append(warning)
            result.reverted.append(op)

        log_ctx.info(
            f"Rollback finished: {len(result.reverted)} reverted, {len(result.manual)} manual, "
            f"{len(result.errors)} failed, {len(result.kept)} kept"
        )

        if not result.success:
            raise RollbackExecutionError(result)
        return result

    @staticmethod
    def _is_after_checkpoint(op: RollbackOperation, checkpoint: Checkpoint) -> bool:
        if checkpoint.sequence is not None and op.sequence is not None:
            return op.sequence > checkpoint.sequence
        if op.timestamp is None:
            return True
        return op.timestamp > checkpoint.timestamp

    def _revert_operation(self, op: RollbackOperation) -> Optional[str]:
        """Undo one revertible operation. Returns a warning, if any."""
        reverter = self._reverters.get(op.operation_type)
        if reverter is None:
            raise InvalidOperationError(f"no automatic reversal for operation type '{op.type}'")
        return reverter(op)

    def _revert_file_created(self, op: RollbackOperation) -> Optional[str]:
        path = Path(op.target)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
        logger.info(f"Rolled back file creation: {path}")
        return None

    def _revert_file_modified(self, op: RollbackOperation) -> Optional[str]:
        if not op.backup:
            raise InvalidOperationError(f"no backup recorded for modified file {op.target}")
        self._restore_from_backup(Path(op.backup), Path(op.target))
        return None

    def _revert_file_deleted(self, op: RollbackOperation) -> Optional[str]:
        if not op.backup:
            return f"Cannot restore deleted file {op.target}: no backup was taken, content is unrecoverable"
        self._restore_from_backup(Path(op.backup), Path(op.target))
        return None

    def _restore_from_backup(self, backup: Path, target: Path) -> None:
        try:
            data = backup.read_bytes()
        except OSError as e:
            raise PersistenceError(f"backup {backup} is unreadable: {e}") from e

        atomic_write_bytes(target, data)
        shutil.copymode(backup, target)
        logger.info(f"Restored {target} from backup {backup}")

    # Cleanup

    def cleanup_checkpoints(self, pipeline_id: str) -> None:
        """
        Remove every checkpoint, the rollback log and all backups of a pipeline.

        Removing an absent pipeline is not an error.

        Raises:
            PersistenceError: If the pipeline directory cannot be removed.
        """
        pipeline_dir = self.layout.pipeline_dir(pipeline_id)
        lock_path = self.layout.lock_path(pipeline_id)
        try:
            shutil.rmtree(pipeline_dir)
        except FileNotFoundError:
            forget_lock(lock_path)
            return
        except OSError as e:
            raise PersistenceError(f"Failed to remove {pipeline_dir}: {e}") from e
        forget_lock(lock_path)
        logger.info(f"Removed rollback state for pipeline {pipeline_id}")


def get_rollback_manager(state_dir: Optional[Union[str, Path]] = None) -> RollbackManager:
    """
    Build a rollback manager.

    Args:
        state_dir: Base directory for persisted state. Defaults to the
            configured ``storage.state_dir``.
    """
    if state_dir is None:
        state_dir = config_manager.config.storage.state_dir
    return RollbackManager(Path(state_dir).expanduser())
