# retrace/contract/models.py
"""
Contract descriptors consumed by the validators.
"""
from enum import Enum
from typing import Dict, Any, Optional, List, Union

from pydantic import BaseModel, ConfigDict, Field


class ContractType(str, Enum):
    """Supported validation kinds."""
    JSON_SCHEMA = "json_schema"
    TEMPLATE = "template"
    TEST_SUITE = "test_suite"


class ContractConfig(BaseModel):
    """What a step's output must satisfy."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="Validation kind, see ContractType")
    source: Optional[str] = Field(None, description="Output file, relative to the workspace")
    schema_: Optional[Union[str, Dict[str, Any]]] = Field(
        None, alias="schema", description="Inline JSON schema"
    )
    schema_path: Optional[str] = Field(None, description="JSON schema or template descriptor file")
    command: Optional[str] = Field(None, description="Test command, or the executable when command_args is set")
    command_args: List[str] = Field(default_factory=list)
    dir: Optional[str] = Field(
        None, description="Working directory: absolute, relative to the workspace, or 'project_root'"
    )
    timeout: Optional[float] = Field(None, gt=0, description="Seconds before the test command is killed")
    max_retries: int = Field(1, ge=0)
    must_pass: bool = True


class TemplateConfig(BaseModel):
    """Structure a templated output must follow."""
    type: str = Field("", description="json, markdown or yaml")
    template_path: Optional[str] = None
    required: List[str] = Field(default_factory=list, description="Required fields or sections")
    constraints: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="Field name -> min_length, max_length, pattern, enum"
    )
