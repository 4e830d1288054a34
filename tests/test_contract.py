"""
Tests for contract validators.
"""
import asyncio
import json
import shlex
import sys

import pytest
from unittest.mock import AsyncMock, patch

from retrace.contract import (
    ContractConfig,
    JSONSchemaValidator,
    TemplateValidator,
    TestSuiteValidator,
    ValidationError,
    new_validator,
    validate,
    validate_with_retries,
)
from retrace.contract.template import check_constraint
from retrace.contract.testsuite import resolve_working_dir, tail_lines

PERSON_SCHEMA = {
    "type": "object",
    "required": ["name", "age"],
    "properties": {
        "name": {"type": "string"},
        "age": {"type": "integer", "minimum": 0},
    },
}


class ExitedProcess:
    """A child that hangs until killed, then turns out to have exited already."""

    returncode = 0

    def __init__(self):
        self.communicate_calls = 0

    async def communicate(self):
        self.communicate_calls += 1
        if self.communicate_calls == 1:
            await asyncio.sleep(30)
        return b"", b""

    def kill(self):
        raise ProcessLookupError()


def python_contract(script, **kwargs):
    """A test_suite contract running a Python snippet."""
    return ContractConfig(type="test_suite", command=sys.executable, command_args=["-c", script], **kwargs)


def test_validation_error_format():
    error = ValidationError("json_schema", "artifact does not match schema", details=["age: bad"])
    assert str(error) == (
        "contract validation failed [json_schema]: artifact does not match schema"
        "\n  Details:\n    - age: bad"
    )

    exhausted = ValidationError("template", "gave up", retryable=False, attempt=3, max_retries=3)
    assert str(exhausted) == "contract validation failed [template] (attempt 3/3): gave up"
    assert exhausted.retryable is False


class TestJSONSchemaValidator:
    """Tests for the json_schema contract."""

    @pytest.mark.asyncio
    async def test_valid_artifact(self, workspace):
        (workspace / "person.json").write_text(json.dumps({"name": "Ada", "age": 36}))
        config = ContractConfig(type="json_schema", source="person.json", schema=PERSON_SCHEMA)

        await validate(config, str(workspace))

    @pytest.mark.asyncio
    async def test_schema_violations_are_retryable(self, workspace):
        (workspace / "person.json").write_text(json.dumps({"name": 42, "age": -1}))
        config = ContractConfig(type="json_schema", source="person.json", schema=PERSON_SCHEMA)

        with pytest.raises(ValidationError) as exc_info:
            await JSONSchemaValidator().validate(config, str(workspace))

        error = exc_info.value
        assert error.retryable is True
        assert error.contract_type == "json_schema"
        assert len(error.details) == 2
        assert error.details[0].startswith("age:")
        assert error.details[1].startswith("name:")

    @pytest.mark.asyncio
    async def test_missing_required_reported_at_root(self, workspace):
        (workspace / "person.json").write_text(json.dumps({"name": "Ada"}))
        config = ContractConfig(type="json_schema", source="person.json", schema=PERSON_SCHEMA)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.details[0].startswith("(root):")

    @pytest.mark.asyncio
    async def test_inline_schema_string_and_default_source(self, workspace):
        (workspace / "artifact.json").write_text("[1, 2, 3]")
        config = ContractConfig(type="json_schema", schema='{"type": "array"}')

        await validate(config, str(workspace))

    @pytest.mark.asyncio
    async def test_schema_from_file(self, workspace, tmp_path):
        schema_file = tmp_path / "schema.json"
        schema_file.write_text(json.dumps(PERSON_SCHEMA))
        (workspace / "person.json").write_text(json.dumps({"name": "Ada", "age": 36}))
        config = ContractConfig(type="json_schema", source="person.json", schema_path=str(schema_file))

        await validate(config, str(workspace))

    @pytest.mark.asyncio
    async def test_invalid_json_is_retryable(self, workspace):
        (workspace / "person.json").write_text("{oops")
        config = ContractConfig(type="json_schema", source="person.json", schema=PERSON_SCHEMA)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is True
        assert exc_info.value.message == "invalid JSON format"

    @pytest.mark.asyncio
    async def test_missing_output_is_retryable(self, workspace):
        config = ContractConfig(type="json_schema", source="nope.json", schema=PERSON_SCHEMA)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"schema": "{not json"},
            {"schema": {"type": 12}},
            {"schema_path": "/definitely/not/here.json"},
        ],
    )
    async def test_schema_problems_are_not_retryable(self, workspace, kwargs):
        (workspace / "artifact.json").write_text("{}")
        config = ContractConfig(type="json_schema", **kwargs)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is False


class TestTemplateValidator:
    """Tests for the template contract."""

    @pytest.fixture
    def json_template(self, tmp_path):
        path = tmp_path / "template.json"
        path.write_text(json.dumps({
            "type": "json",
            "required": ["title", "status"],
            "constraints": {
                "title": {"min_length": 3, "max_length": 20},
                "status": {"enum": ["draft", "final"]},
            },
        }))
        return str(path)

    @pytest.mark.asyncio
    async def test_compliant_json(self, workspace, json_template):
        (workspace / "doc.json").write_text(json.dumps({"title": "Report", "status": "final"}))
        config = ContractConfig(type="template", source="doc.json", schema_path=json_template)

        await TemplateValidator().validate(config, str(workspace))

    @pytest.mark.asyncio
    async def test_all_violations_reported(self, workspace, json_template):
        (workspace / "doc.json").write_text(json.dumps({"title": "ab"}))
        config = ContractConfig(type="template", source="doc.json", schema_path=json_template)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        error = exc_info.value
        assert error.retryable is True
        assert "missing required field: status" in error.details
        assert "field title too short (min: 3)" in error.details

    @pytest.mark.asyncio
    async def test_non_object_json(self, workspace, json_template):
        (workspace / "doc.json").write_text("[]")
        config = ContractConfig(type="template", source="doc.json", schema_path=json_template)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_yaml_template_and_output(self, workspace, tmp_path):
        template = tmp_path / "template.yaml"
        template.write_text("type: yaml\nrequired:\n  - name\n  - version\n")
        (workspace / "chart.yaml").write_text("name: demo\nversion: 1.2.0\n")
        config = ContractConfig(type="template", source="chart.yaml", schema_path=str(template))

        await validate(config, str(workspace))

        (workspace / "chart.yaml").write_text("name: demo\n")
        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))
        assert exc_info.value.details == ["missing required field: version"]

    @pytest.mark.asyncio
    async def test_markdown_sections(self, workspace, tmp_path):
        template = tmp_path / "template.json"
        template.write_text(json.dumps({"type": "markdown", "required": ["Summary", "Next Steps"]}))
        config = ContractConfig(type="template", source="README.md", schema_path=str(template))

        (workspace / "README.md").write_text("# Title\n\n## summary\n\ntext\n\n### Next Steps\n")
        await validate(config, str(workspace))

        (workspace / "README.md").write_text("# Title\n\nSummary without a heading\n")
        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))
        assert exc_info.value.details == [
            "missing required section: Summary",
            "missing required section: Next Steps",
        ]

    @pytest.mark.asyncio
    async def test_unsupported_template_type(self, workspace, tmp_path):
        template = tmp_path / "template.json"
        template.write_text(json.dumps({"type": "xml"}))
        (workspace / "out.xml").write_text("<a/>")
        config = ContractConfig(type="template", source="out.xml", schema_path=str(template))

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_missing_source_is_not_retryable(self, workspace, json_template):
        config = ContractConfig(type="template", schema_path=json_template)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is False


def test_check_constraint():
    assert check_constraint("id", "ABC-123", {"pattern": r"^[A-Z]+-\d+$"}) == []
    assert check_constraint("id", "abc", {"pattern": r"^[A-Z]+$"}) == [
        "field id does not match pattern: ^[A-Z]+$"
    ]
    # An invalid pattern can never be satisfied
    assert len(check_constraint("id", "abc", {"pattern": "("})) == 1
    assert check_constraint("tags", ["a", "b", "c"], {"max_length": 2}) == ["field tags too long (max: 2)"]
    assert check_constraint("count", 5, {"min_length": 10}) == []
    assert len(check_constraint("level", "warn", {"enum": ["info", "error"]})) == 1


class TestTestSuiteValidator:
    """Tests for the test_suite contract."""

    @pytest.mark.asyncio
    async def test_passing_suite(self, workspace):
        await validate(python_contract("import sys; sys.exit(0)"), str(workspace))

    @pytest.mark.asyncio
    async def test_stderr_on_success_is_ignored(self, workspace):
        script = "import sys; sys.stderr.write('collected 3 items\\n'); sys.exit(0)"
        await validate(python_contract(script), str(workspace))

    @pytest.mark.asyncio
    async def test_failing_suite(self, workspace):
        script = "import sys; print('FAILED test_x'); sys.stderr.write('assert 1 == 2\\n'); sys.exit(3)"

        with pytest.raises(ValidationError) as exc_info:
            await validate(python_contract(script), str(workspace))

        error = exc_info.value
        assert error.retryable is True
        assert error.message == "test suite failed (exit code 3)"
        assert error.details[0].startswith("command: ")
        assert "stderr:" in error.details
        assert "  assert 1 == 2" in error.details
        assert "stdout:" in error.details
        assert "  FAILED test_x" in error.details

    @pytest.mark.asyncio
    async def test_output_is_truncated(self, workspace):
        script = "import sys\nfor i in range(25): print(f'line {i}')\nsys.exit(1)"

        with pytest.raises(ValidationError) as exc_info:
            await TestSuiteValidator(tail_limit=10).validate(python_contract(script), str(workspace))

        details = exc_info.value.details
        assert "stdout (last 10 lines):" in details
        assert "  line 24" in details
        assert "  line 14" not in details

    @pytest.mark.asyncio
    async def test_timeout_kills_suite(self, workspace):
        config = python_contract("import time; time.sleep(30)", timeout=0.5)

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is True
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_when_process_already_exited(self, workspace):
        process = ExitedProcess()
        spawn = AsyncMock(return_value=process)
        config = ContractConfig(type="test_suite", command="pytest", timeout=0.1)

        with patch("retrace.contract.testsuite.asyncio.create_subprocess_exec", new=spawn):
            with pytest.raises(ValidationError) as exc_info:
                await validate(config, str(workspace))

        assert exc_info.value.retryable is True
        assert "timed out" in exc_info.value.message
        assert process.communicate_calls == 2

    @pytest.mark.asyncio
    async def test_command_string_is_split(self, workspace):
        command = f"{shlex.quote(sys.executable)} -c 'import sys; sys.exit(0)'"
        await validate(ContractConfig(type="test_suite", command=command), str(workspace))

    @pytest.mark.asyncio
    async def test_runs_in_relative_dir(self, workspace):
        (workspace / "pkg").mkdir()
        script = "import os, sys; sys.exit(0 if os.path.basename(os.getcwd()) == 'pkg' else 1)"

        await validate(python_contract(script, dir="pkg"), str(workspace))

    @pytest.mark.asyncio
    async def test_missing_command(self, workspace):
        with pytest.raises(ValidationError) as exc_info:
            await validate(ContractConfig(type="test_suite", command="  "), str(workspace))

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_unknown_executable(self, workspace):
        config = ContractConfig(type="test_suite", command="retrace-no-such-test-runner --all")

        with pytest.raises(ValidationError) as exc_info:
            await validate(config, str(workspace))

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_resolve_working_dir(self, workspace, tmp_path):
        assert await resolve_working_dir(None, str(workspace)) == workspace
        assert await resolve_working_dir("sub", str(workspace)) == workspace / "sub"
        assert await resolve_working_dir(str(tmp_path), str(workspace)) == tmp_path


def test_tail_lines():
    assert tail_lines("stderr", "", 10) == []
    assert tail_lines("stdout", "a\nb\n", 10) == ["stdout:", "  a", "  b"]
    assert tail_lines("stdout", "a\nb\nc\n", 2) == ["stdout (last 2 lines):", "  b", "  c"]


class TestRetries:
    """Tests for validate_with_retries."""

    def test_unknown_contract_type(self):
        with pytest.raises(ValidationError) as exc_info:
            new_validator(ContractConfig(type="telepathy"))

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_retries_until_success(self, workspace):
        side_effect = [ValidationError("json_schema", "not yet"), None]
        with patch.object(JSONSchemaValidator, "validate", new=AsyncMock(side_effect=side_effect)) as mocked:
            await validate_with_retries(ContractConfig(type="json_schema", max_retries=3), str(workspace))

        assert mocked.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self, workspace):
        failure = ValidationError("json_schema", "bad config", retryable=False)
        with patch.object(JSONSchemaValidator, "validate", new=AsyncMock(side_effect=failure)) as mocked:
            with pytest.raises(ValidationError) as exc_info:
                await validate_with_retries(ContractConfig(type="json_schema", max_retries=5), str(workspace))

        assert exc_info.value is failure
        assert mocked.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries(self, workspace):
        (workspace / "artifact.json").write_text('{"name": "Ada"}')
        config = ContractConfig(type="json_schema", schema=PERSON_SCHEMA, max_retries=3)

        with pytest.raises(ValidationError) as exc_info:
            await validate_with_retries(config, str(workspace))

        error = exc_info.value
        assert error.retryable is False
        assert error.attempt == 3
        assert error.max_retries == 3
        assert "(attempt 3/3)" in str(error)
        assert "artifact does not match schema" in error.details[0]

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self, workspace):
        with patch.object(JSONSchemaValidator, "validate", new=AsyncMock(side_effect=ValidationError("json_schema", "x"))) as mocked:
            with pytest.raises(ValidationError):
                await validate_with_retries(ContractConfig(type="json_schema", max_retries=0), str(workspace))

        assert mocked.await_count == 1
