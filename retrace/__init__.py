"""
retrace: checkpoint and rollback support for multi-step automated pipelines.
"""

__version__ = '0.1.0'

from retrace.execution.rollback import RollbackManager, get_rollback_manager
from retrace.execution.models import (
    Checkpoint,
    OperationType,
    RollbackLog,
    RollbackOperation,
    RollbackResult,
)

__all__ = [
    "__version__",
    "Checkpoint",
    "OperationType",
    "RollbackLog",
    "RollbackManager",
    "RollbackOperation",
    "RollbackResult",
    "get_rollback_manager",
]
