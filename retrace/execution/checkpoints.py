# retrace/execution/checkpoints.py
"""
Checkpoint store: one JSON record per pipeline step.
"""
from pathlib import Path
from typing import Dict, Any, Optional, List

from pydantic import ValidationError as PydanticValidationError

from retrace.execution.errors import CheckpointNotFoundError, CorruptRecordError, PersistenceError
from retrace.execution.models import Checkpoint, utc_now
from retrace.execution.storage import StateLayout, atomic_write_text
from retrace.utils.logging import get_logger

logger = get_logger(__name__)


def _read_checkpoint(path: Path) -> Checkpoint:
    raw = path.read_bytes()
    try:
        return Checkpoint.model_validate_json(raw)
    except PydanticValidationError as e:
        raise CorruptRecordError(f"Checkpoint {path} is corrupt: {e}") from e


class CheckpointStore:
    """Persists and loads checkpoints keyed by (pipeline_id, step_id)."""

    def __init__(self, layout: StateLayout):
        self.layout = layout

    def create_checkpoint(
        self,
        pipeline_id: str,
        step_id: str,
        workspace_path: str,
        artifacts: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        sequence: Optional[int] = None,
    ) -> Checkpoint:
        """
        Persist a checkpoint, replacing any earlier one for the same step.

        Returns:
            The persisted checkpoint, with ``can_rollback`` set.

        Raises:
            PersistenceError: If the checkpoint cannot be written.
        """
        path = self.layout.checkpoint_path(pipeline_id, step_id)
        checkpoint = Checkpoint(
            pipeline_id=pipeline_id,
            step_id=step_id,
            workspace_path=str(workspace_path),
            artifacts=dict(artifacts or {}),
            metadata=dict(metadata or {}),
            timestamp=utc_now(),
            sequence=sequence,
            can_rollback=True,
        )

        atomic_write_text(path, checkpoint.model_dump_json(indent=2))
        logger.info(f"Created checkpoint {pipeline_id}/{step_id}")
        return checkpoint

    def load_checkpoint(self, pipeline_id: str, step_id: str) -> Checkpoint:
        """
        Load a previously persisted checkpoint.

        Raises:
            CheckpointNotFoundError: If no checkpoint exists for the step.
            CorruptRecordError: If the stored record cannot be decoded.
            PersistenceError: On any other read failure.
        """
        path = self.layout.checkpoint_path(pipeline_id, step_id)
        try:
            return _read_checkpoint(path)
        except FileNotFoundError as e:
            raise CheckpointNotFoundError(pipeline_id, step_id) from e
        except OSError as e:
            raise PersistenceError(f"Failed to read checkpoint {path}: {e}") from e

    def list_checkpoints(self, pipeline_id: str) -> List[Checkpoint]:
        """All readable checkpoints of a pipeline, oldest first."""
        directory = self.layout.checkpoints_dir(pipeline_id)
        if not directory.is_dir():
            return []

        checkpoints = []
        for path in directory.glob("*.json"):
            try:
                checkpoints.append(_read_checkpoint(path))
            except (OSError, CorruptRecordError) as e:
                logger.warning(f"Skipping unreadable checkpoint {path}: {e}")
        checkpoints.sort(key=lambda cp: (cp.timestamp, cp.step_id))
        return checkpoints
