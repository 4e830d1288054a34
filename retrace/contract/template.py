# retrace/contract/template.py
"""
Template contract: structured output must contain the fields or sections a
template descriptor requires and respect its per-field constraints.
"""
import json
import re
from pathlib import Path
from typing import Dict, Any, List

import yaml
from pydantic import ValidationError as PydanticValidationError

from retrace.contract.common import read_output
from retrace.contract.errors import ValidationError
from retrace.contract.models import ContractConfig, ContractType, TemplateConfig
from retrace.utils.logging import get_logger

logger = get_logger(__name__)

CONTRACT_TYPE = ContractType.TEMPLATE.value


def load_template_config(path: str) -> TemplateConfig:
    """Read a template descriptor from a JSON or YAML file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(
            CONTRACT_TYPE, f"failed to read template config: {path}", details=[str(e)], retryable=False
        ) from e

    try:
        if Path(path).suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(raw) or {}
        else:
            data = json.loads(raw)
        return TemplateConfig.model_validate(data)
    except (json.JSONDecodeError, yaml.YAMLError, PydanticValidationError) as e:
        raise ValidationError(
            CONTRACT_TYPE, f"failed to parse template config: {path}", details=[str(e)], retryable=False
        ) from e


def check_constraint(field: str, value: Any, constraint: Dict[str, Any]) -> List[str]:
    """Return every violation of ``constraint`` by ``value``."""
    violations = []
    sized = isinstance(value, (str, list))

    min_length = constraint.get("min_length")
    if min_length is not None and sized and len(value) < int(min_length):
        violations.append(f"field {field} too short (min: {min_length})")

    max_length = constraint.get("max_length")
    if max_length is not None and sized and len(value) > int(max_length):
        violations.append(f"field {field} too long (max: {max_length})")

    pattern = constraint.get("pattern")
    if pattern is not None and isinstance(value, str):
        try:
            matched = re.search(pattern, value) is not None
        except re.error:
            matched = False
        if not matched:
            violations.append(f"field {field} does not match pattern: {pattern}")

    allowed = constraint.get("enum")
    if isinstance(allowed, list) and value not in allowed:
        violations.append(f"field {field} must be one of {allowed}, got {value!r}")

    return violations


class TemplateValidator:
    """Enforces structured template compliance for JSON, YAML and Markdown outputs."""

    async def validate(self, config: ContractConfig, workspace_path: str) -> None:
        if config.schema_path:
            template = load_template_config(config.schema_path)
        else:
            template = TemplateConfig()

        if template.type not in ("json", "yaml", "markdown"):
            raise ValidationError(
                CONTRACT_TYPE,
                f"unsupported template type: {template.type or '(none)'}",
                details=["template type must be one of: json, yaml, markdown"],
                retryable=False,
            )

        content = read_output(CONTRACT_TYPE, workspace_path, config.source)

        if template.type == "markdown":
            self._validate_markdown(content, template)
        else:
            self._validate_structured(content, template)

        logger.debug(f"Template contract satisfied for {config.source}")

    def _validate_structured(self, content: str, template: TemplateConfig) -> None:
        try:
            if template.type == "json":
                output = json.loads(content)
            else:
                output = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValidationError(
                CONTRACT_TYPE, f"invalid {template.type.upper()} format", details=[str(e)], retryable=True
            ) from e

        if not isinstance(output, dict):
            raise ValidationError(
                CONTRACT_TYPE,
                f"{template.type.upper()} output must be an object",
                details=[f"got {type(output).__name__}"],
                retryable=True,
            )

        violations = [
            f"missing required field: {field}" for field in template.required if field not in output
        ]
        for field, constraint in template.constraints.items():
            if field in output:
                violations.extend(check_constraint(field, output[field], constraint))

        if violations:
            raise ValidationError(
                CONTRACT_TYPE, "template validation failed", details=violations, retryable=True
            )

    def _validate_markdown(self, content: str, template: TemplateConfig) -> None:
        violations = []
        for section in template.required:
            heading = re.compile(rf"^#+\s+{re.escape(section)}", re.IGNORECASE | re.MULTILINE)
            if not heading.search(content):
                violations.append(f"missing required section: {section}")

        if violations:
            raise ValidationError(
                CONTRACT_TYPE, "markdown template validation failed", details=violations, retryable=True
            )
