# retrace/contract/common.py
"""
Helpers shared by the validators.
"""
from pathlib import Path
from typing import Optional

from retrace.contract.errors import ValidationError


def resolve_in_workspace(workspace_path: str, path: str) -> Path:
    """Absolute paths are kept, relative ones are taken from the workspace."""
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return Path(workspace_path) / candidate


def read_output(contract_type: str, workspace_path: str, source: Optional[str]) -> str:
    """Read the step output a contract applies to."""
    if not source:
        raise ValidationError(
            contract_type,
            "no source file specified",
            details=[f"{contract_type} requires a 'source' path"],
            retryable=False,
        )

    output_path = resolve_in_workspace(workspace_path, source)
    try:
        return output_path.read_text(encoding="utf-8")
    except OSError as e:
        # The step may still produce it on another attempt
        raise ValidationError(
            contract_type,
            f"failed to read output file: {output_path}",
            details=[str(e)],
            retryable=True,
        ) from e
