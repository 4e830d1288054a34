# retrace/execution/backups.py
"""
Backup copies of files taken before they are mutated.
"""
import itertools
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Union

from retrace.execution.errors import PersistenceError
from retrace.execution.storage import StateLayout, atomic_write_bytes
from retrace.utils.logging import get_logger

logger = get_logger(__name__)

# Characters kept verbatim when encoding an original path into a file name
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_ENCODED_LENGTH = 120

# Process-wide, so two stores over the same directory never pick the same name
_backup_counter = itertools.count(1)


def encode_backup_name(file_path: Union[str, Path]) -> str:
    """Flatten an absolute path into a single file name component."""
    encoded = _UNSAFE_CHARS.sub("_", str(Path(file_path).resolve()).strip("/\\"))
    if len(encoded) > _MAX_ENCODED_LENGTH:
        # Keep the tail: it carries the file name
        encoded = encoded[-_MAX_ENCODED_LENGTH:]
    return encoded or "root"


class BackupStore:
    """Stores byte-identical copies of files under ``<pipeline>/backups``."""

    def __init__(self, layout: StateLayout):
        self.layout = layout

    def create_backup(self, pipeline_id: str, file_path: Union[str, Path]) -> Path:
        """
        Copy the current content of a file into the pipeline's backup directory.

        Args:
            pipeline_id: Pipeline that owns the backup.
            file_path: File about to be modified or deleted.

        Returns:
            Location of the backup copy.

        Raises:
            PersistenceError: If the source cannot be read or the backup written.
        """
        source = Path(file_path)
        try:
            data = source.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Failed to read {source} for backup: {e}") from e

        timestamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        backup_name = f"{next(_backup_counter):06d}-{timestamp}-{encode_backup_name(source)}"
        backup_path = self.layout.backups_dir(pipeline_id) / backup_name

        # The counter is per process; never clobber a file another process wrote
        while backup_path.exists():
            backup_name = f"{next(_backup_counter):06d}-{timestamp}-{encode_backup_name(source)}"
            backup_path = self.layout.backups_dir(pipeline_id) / backup_name

        atomic_write_bytes(backup_path, data)
        try:
            shutil.copymode(source, backup_path)
        except OSError as e:
            logger.warning(f"Could not copy permissions of {source} to its backup: {e}")
        logger.debug(f"Created backup of {source} at {backup_path}")
        return backup_path
