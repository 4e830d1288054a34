# retrace/contract/__init__.py
"""
Contract validators deciding whether a pipeline step produced acceptable output.
"""
from retrace.contract.errors import ValidationError
from retrace.contract.models import ContractConfig, ContractType, TemplateConfig
from retrace.contract.schema import JSONSchemaValidator
from retrace.contract.template import TemplateValidator
from retrace.contract.testsuite import TestSuiteValidator
from retrace.contract.validator import new_validator, validate, validate_with_retries

__all__ = [
    "ContractConfig",
    "ContractType",
    "JSONSchemaValidator",
    "TemplateConfig",
    "TemplateValidator",
    "TestSuiteValidator",
    "ValidationError",
    "new_validator",
    "validate",
    "validate_with_retries",
]
