# retrace/contract/validator.py
"""
Entry points for running a contract against a workspace.
"""
from typing import Optional

from retrace.contract.errors import ValidationError
from retrace.contract.models import ContractConfig, ContractType
from retrace.contract.schema import JSONSchemaValidator
from retrace.contract.template import TemplateValidator
from retrace.contract.testsuite import TestSuiteValidator
from retrace.utils.logging import get_logger

logger = get_logger(__name__)

_VALIDATORS = {
    ContractType.JSON_SCHEMA.value: JSONSchemaValidator,
    ContractType.TEMPLATE.value: TemplateValidator,
    ContractType.TEST_SUITE.value: TestSuiteValidator,
}


def new_validator(config: ContractConfig):
    """
    Create the validator for a contract's type.

    Raises:
        ValidationError: For an unknown contract type (not retryable).
    """
    validator_cls = _VALIDATORS.get(config.type)
    if validator_cls is None:
        raise ValidationError(
            config.type or "unknown",
            f"unsupported contract type: {config.type!r}",
            details=[f"supported types: {', '.join(sorted(_VALIDATORS))}"],
            retryable=False,
        )
    return validator_cls()


async def validate(config: ContractConfig, workspace_path: str) -> None:
    """
    Check a workspace against a contract.

    Raises:
        ValidationError: If the contract is not satisfied.
    """
    await new_validator(config).validate(config, workspace_path)


async def validate_with_retries(config: ContractConfig, workspace_path: str) -> None:
    """
    Run validation up to ``max_retries`` times.

    Non-retryable failures stop immediately. When every attempt fails a
    non-retryable error summarizing the last failure is raised.
    """
    validator = new_validator(config)
    max_retries = max(config.max_retries, 1)

    last_error: Optional[ValidationError] = None
    for attempt in range(1, max_retries + 1):
        try:
            await validator.validate(config, workspace_path)
            return
        except ValidationError as e:
            if not e.retryable:
                raise
            last_error = e
            logger.info(f"Contract {config.type} failed attempt {attempt}/{max_retries}: {e.message}")

    raise ValidationError(
        config.type,
        f"validation failed after {max_retries} attempt(s)",
        details=[str(last_error)],
        retryable=False,
        attempt=max_retries,
        max_retries=max_retries,
    )
