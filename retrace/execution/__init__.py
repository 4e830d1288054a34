# retrace/execution/__init__.py
"""
Checkpoints, rollback log, backups and tracked workspace operations.
"""
from retrace.execution.errors import (
    CheckpointNotFoundError,
    CorruptRecordError,
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
from retrace.execution.rollback import RollbackManager, get_rollback_manager

__all__ = [
    "Checkpoint",
    "CheckpointNotFoundError",
    "CorruptRecordError",
    "InvalidOperationError",
    "OperationType",
    "PersistenceError",
    "RollbackError",
    "RollbackExecutionError",
    "RollbackLog",
    "RollbackLogNotFoundError",
    "RollbackManager",
    "RollbackOperation",
    "RollbackResult",
    "get_rollback_manager",
]
