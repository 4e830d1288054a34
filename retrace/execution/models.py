# retrace/execution/models.py
"""
Records persisted by the checkpoint and rollback stores.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # Naive datetimes are taken as local time
    if value is not None and value.tzinfo is None:
        return value.astimezone(timezone.utc)
    return value


class OperationType(str, Enum):
    """Conventional operation tags. Other tags are stored as plain strings."""
    FILE_CREATED = "file_created"
    FILE_MODIFIED = "file_modified"
    FILE_DELETED = "file_deleted"
    GIT_COMMIT = "git_commit"
    COMMAND_EXECUTED = "command_executed"


class Checkpoint(BaseModel):
    """Marker of workspace and artifact state at a given pipeline step."""
    pipeline_id: str = Field(..., description="Pipeline the checkpoint belongs to")
    step_id: str = Field(..., description="Step the checkpoint was taken before")
    workspace_path: str = Field(..., description="Workspace path at checkpoint time")
    artifacts: Dict[str, str] = Field(default_factory=dict, description="Artifact name -> file path")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    sequence: Optional[int] = Field(
        None, description="Highest rollback-log sequence recorded when the checkpoint was taken"
    )
    can_rollback: bool = Field(False, description="Whether the checkpoint is a valid rollback target")

    @field_validator("pipeline_id", "step_id")
    @classmethod
    def check_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("identifier must not be empty")
        return value

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_aware(value)


class RollbackOperation(BaseModel):
    """One logged mutating action."""
    type: str = Field(..., description="Operation tag, see OperationType")
    target: str = Field(..., description="File path, or an opaque identifier such as a commit hash")
    backup: Optional[str] = Field(None, description="Backup copy of the target taken before the mutation")
    timestamp: Optional[datetime] = Field(None, description="Set by the manager when logged")
    sequence: Optional[int] = Field(None, description="Per-pipeline order, assigned when logged")
    can_revert: bool = False
    revert_steps: List[str] = Field(default_factory=list, description="Manual undo instructions")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type_tag(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_aware(value)

    @property
    def type_name(self) -> str:
        return self.type

    @property
    def operation_type(self) -> Optional[OperationType]:
        """The conventional tag, or None for custom operation types."""
        try:
            return OperationType(self.type)
        except ValueError:
            return None

    def describe(self) -> str:
        return f"[{self.type}] {self.target}"


class RollbackLog(BaseModel):
    """Append-only record of a pipeline's operations, in chronological order."""
    pipeline_id: str
    start_time: datetime = Field(default_factory=utc_now)
    next_sequence: int = 1
    operations: List[RollbackOperation] = Field(default_factory=list)

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, value: datetime) -> datetime:
        return _as_aware(value)

    @property
    def last_sequence(self) -> int:
        """Sequence number of the most recent operation, 0 for an empty log."""
        return self.next_sequence - 1


class RollbackResult(BaseModel):
    """What a rollback did to each selected operation."""
    pipeline_id: str
    checkpoint_step: Optional[str] = None
    reverted: List[RollbackOperation] = Field(default_factory=list)
    manual: List[RollbackOperation] = Field(default_factory=list)
    kept: List[RollbackOperation] = Field(
        default_factory=list, description="Operations at or before the checkpoint, left intact"
    )
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when everything was reverted and nothing is left for an operator."""
        return not self.errors and not self.manual
