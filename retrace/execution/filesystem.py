# retrace/execution/filesystem.py
"""
Tracked workspace operations.

Each helper performs a mutation the way the rollback log expects it: back up
first, log second, mutate last. If logging fails the mutation is not
performed, since an unlogged change could never be rolled back.
"""
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from retrace.execution.errors import RollbackError
from retrace.execution.models import OperationType, RollbackOperation
from retrace.execution.rollback import RollbackManager
from retrace.utils.logging import get_logger

logger = get_logger(__name__)


class FileSystemError(Exception):
    """Exception raised for file system operation errors."""
    pass


def _write(path: Path, content: Union[str, bytes]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")


async def create_file(
    manager: RollbackManager,
    pipeline_id: str,
    path: Union[str, Path],
    content: Union[str, bytes] = "",
    dry_run: bool = False,
) -> RollbackOperation:
    """
    Create a new file and record it as ``file_created``.

    Args:
        manager: Rollback manager recording the operation.
        pipeline_id: Pipeline performing the operation.
        path: File to create. Must not exist yet.
        content: Initial content.
        dry_run: Whether to simulate the operation without making changes.

    Returns:
        The logged operation.
    """
    path_obj = Path(path).absolute()
    if path_obj.exists():
        raise FileSystemError(f"File already exists: {path_obj}")

    operation = RollbackOperation(
        type=OperationType.FILE_CREATED,
        target=str(path_obj),
        can_revert=True,
    )
    if dry_run:
        logger.info(f"DRY RUN: Would create file at {path_obj}")
        return operation

    try:
        logged = manager.log_operation(pipeline_id, operation)
        _write(path_obj, content)
    except RollbackError as e:
        raise FileSystemError(f"Refusing to create {path_obj}: could not record operation: {e}") from e
    except OSError as e:
        logger.exception(f"Error creating file at {path_obj}: {str(e)}")
        raise FileSystemError(f"Failed to create file: {str(e)}") from e

    logger.info(f"Created file at {path_obj}")
    return logged


async def write_file(
    manager: RollbackManager,
    pipeline_id: str,
    path: Union[str, Path],
    content: Union[str, bytes],
    dry_run: bool = False,
) -> RollbackOperation:
    """
    Overwrite a file, backing it up first and recording ``file_modified``.

    A file that does not exist yet is created instead.

    Returns:
        The logged operation.
    """
    path_obj = Path(path).absolute()
    if not path_obj.exists():
        return await create_file(manager, pipeline_id, path_obj, content, dry_run=dry_run)
    if not path_obj.is_file():
        raise FileSystemError(f"Path is not a file: {path_obj}")

    if dry_run:
        logger.info(f"DRY RUN: Would write to file at {path_obj}")
        return RollbackOperation(type=OperationType.FILE_MODIFIED, target=str(path_obj), can_revert=True)

    try:
        backup_path = manager.create_backup(pipeline_id, path_obj)
        logged = manager.log_operation(
            pipeline_id,
            RollbackOperation(
                type=OperationType.FILE_MODIFIED,
                target=str(path_obj),
                backup=str(backup_path),
                can_revert=True,
            ),
        )
        _write(path_obj, content)
    except RollbackError as e:
        raise FileSystemError(f"Refusing to modify {path_obj}: could not record operation: {e}") from e
    except OSError as e:
        logger.exception(f"Error writing to file at {path_obj}: {str(e)}")
        raise FileSystemError(f"Failed to write file: {str(e)}") from e

    logger.info(f"Wrote to file at {path_obj}")
    return logged


async def delete_file(
    manager: RollbackManager,
    pipeline_id: str,
    path: Union[str, Path],
    force: bool = False,
    dry_run: bool = False,
) -> Optional[RollbackOperation]:
    """
    Delete a file, backing it up first and recording ``file_deleted``.

    Args:
        force: Whether to ignore a missing file.

    Returns:
        The logged operation, or None when a missing file was ignored.
    """
    path_obj = Path(path).absolute()
    if not path_obj.exists():
        if force:
            logger.info(f"File does not exist, but force=True: {path_obj}")
            return None
        raise FileSystemError(f"File does not exist: {path_obj}")
    if not path_obj.is_file():
        raise FileSystemError(f"Path is not a file: {path_obj}")

    if dry_run:
        logger.info(f"DRY RUN: Would delete file at {path_obj}")
        return RollbackOperation(type=OperationType.FILE_DELETED, target=str(path_obj), can_revert=True)

    try:
        backup_path = manager.create_backup(pipeline_id, path_obj)
        logged = manager.log_operation(
            pipeline_id,
            RollbackOperation(
                type=OperationType.FILE_DELETED,
                target=str(path_obj),
                backup=str(backup_path),
                can_revert=True,
            ),
        )
        path_obj.unlink()
    except RollbackError as e:
        raise FileSystemError(f"Refusing to delete {path_obj}: could not record operation: {e}") from e
    except OSError as e:
        logger.exception(f"Error deleting file at {path_obj}: {str(e)}")
        raise FileSystemError(f"Failed to delete file: {str(e)}") from e

    logger.info(f"Deleted file at {path_obj}")
    return logged


def git_commit_revert_steps(commit_hash: str, branch: Optional[str] = None) -> List[str]:
    """Manual instructions for undoing a commit."""
    steps = [f"git revert --no-edit {commit_hash}"]
    if branch:
        steps.append(f"git push origin {branch}")
    return steps


def record_git_commit(
    manager: RollbackManager,
    pipeline_id: str,
    commit_hash: str,
    branch: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> RollbackOperation:
    """Record a commit. Commits are never reverted automatically."""
    operation = RollbackOperation(
        type=OperationType.GIT_COMMIT,
        target=commit_hash,
        can_revert=False,
        revert_steps=git_commit_revert_steps(commit_hash, branch),
        metadata={**(metadata or {}), **({"branch": branch} if branch else {})},
    )
    return manager.log_operation(pipeline_id, operation)


def record_command(
    manager: RollbackManager,
    pipeline_id: str,
    command: str,
    revert_steps: Optional[List[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> RollbackOperation:
    """Record an executed command whose side effects need manual reversal."""
    steps = list(revert_steps or [])
    if not steps:
        steps = [f"Inspect and manually undo the effects of: {command}"]
    operation = RollbackOperation(
        type=OperationType.COMMAND_EXECUTED,
        target=command,
        can_revert=False,
        revert_steps=steps,
        metadata=dict(metadata or {}),
    )
    return manager.log_operation(pipeline_id, operation)
