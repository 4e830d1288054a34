# retrace/contract/schema.py
"""
JSON schema contract: the step output must be JSON valid against a schema.
"""
import json
from pathlib import Path
from typing import Dict, Any, List

import jsonschema
from jsonschema.exceptions import SchemaError

from retrace.constants import DEFAULT_ARTIFACT_FILE
from retrace.contract.common import read_output
from retrace.contract.errors import ValidationError
from retrace.contract.models import ContractConfig, ContractType
from retrace.utils.logging import get_logger

logger = get_logger(__name__)

CONTRACT_TYPE = ContractType.JSON_SCHEMA.value


class JSONSchemaValidator:
    """Validates a JSON artifact against an inline or file-based schema."""

    def _load_schema(self, config: ContractConfig) -> Dict[str, Any]:
        if config.schema_ is not None:
            if isinstance(config.schema_, dict):
                return config.schema_
            try:
                return json.loads(config.schema_)
            except json.JSONDecodeError as e:
                raise ValidationError(
                    CONTRACT_TYPE, "failed to parse inline schema", details=[str(e)], retryable=False
                ) from e

        if config.schema_path:
            try:
                return json.loads(Path(config.schema_path).read_text(encoding="utf-8"))
            except OSError as e:
                raise ValidationError(
                    CONTRACT_TYPE,
                    f"failed to read schema file: {config.schema_path}",
                    details=[str(e)],
                    retryable=False,
                ) from e
            except json.JSONDecodeError as e:
                raise ValidationError(
                    CONTRACT_TYPE,
                    f"failed to parse schema file: {config.schema_path}",
                    details=[str(e)],
                    retryable=False,
                ) from e

        raise ValidationError(
            CONTRACT_TYPE,
            "no schema or schema_path provided",
            details=["specify either 'schema' (inline JSON) or 'schema_path' (file path)"],
            retryable=False,
        )

    async def validate(self, config: ContractConfig, workspace_path: str) -> None:
        schema = self._load_schema(config)

        validator_cls = jsonschema.validators.validator_for(schema)
        try:
            validator_cls.check_schema(schema)
        except SchemaError as e:
            raise ValidationError(
                CONTRACT_TYPE, "invalid JSON schema", details=[e.message], retryable=False
            ) from e

        content = read_output(CONTRACT_TYPE, workspace_path, config.source or DEFAULT_ARTIFACT_FILE)
        try:
            artifact = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationError(
                CONTRACT_TYPE, "invalid JSON format", details=[str(e)], retryable=True
            ) from e

        violations: List[str] = []
        for error in sorted(validator_cls(schema).iter_errors(artifact), key=lambda err: [str(part) for part in err.absolute_path]):
            location = "/".join(str(part) for part in error.absolute_path) or "(root)"
            violations.append(f"{location}: {error.message}")

        if violations:
            raise ValidationError(
                CONTRACT_TYPE, "artifact does not match schema", details=violations, retryable=True
            )

        logger.debug(f"JSON schema contract satisfied for {config.source or DEFAULT_ARTIFACT_FILE}")
