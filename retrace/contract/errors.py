# retrace/contract/errors.py
"""
Structured contract validation failures.
"""
from typing import List, Optional


class ValidationError(Exception):
    """
    A step's output did not satisfy its contract.

    ``retryable`` separates failures that another attempt can fix (malformed
    output, failing tests) from configuration problems that cannot succeed
    without operator action.
    """

    def __init__(
        self,
        contract_type: str,
        message: str,
        details: Optional[List[str]] = None,
        retryable: bool = True,
        attempt: int = 0,
        max_retries: int = 0,
    ):
        self.contract_type = contract_type
        self.message = message
        self.details = list(details or [])
        self.retryable = retryable
        self.attempt = attempt
        self.max_retries = max_retries
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"contract validation failed [{self.contract_type}]"
        if self.max_retries > 0:
            text += f" (attempt {self.attempt}/{self.max_retries})"
        text += f": {self.message}"
        if self.details:
            text += "\n  Details:"
            for detail in self.details:
                text += f"\n    - {detail}"
        return text
