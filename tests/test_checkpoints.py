"""
Tests for checkpoint persistence.
"""
import pytest

from retrace.execution import (
    CheckpointNotFoundError,
    CorruptRecordError,
    RollbackOperation,
    OperationType,
)


def test_create_and_load_checkpoint(manager):
    """The reference checkpoint round-trips through storage."""
    artifacts = {
        "analysis": "/path/to/analysis.json",
        "result": "/path/to/result.json",
    }
    checkpoint = manager.create_checkpoint("test-pipeline", "step-1", "/workspace", artifacts)

    assert checkpoint.pipeline_id == "test-pipeline"
    assert checkpoint.step_id == "step-1"
    assert checkpoint.can_rollback is True

    loaded = manager.load_checkpoint("test-pipeline", "step-1")
    assert loaded.pipeline_id == "test-pipeline"
    assert loaded.step_id == "step-1"
    assert loaded.workspace_path == "/workspace"
    assert loaded.artifacts == artifacts
    assert loaded.can_rollback is True
    assert loaded.timestamp == checkpoint.timestamp


def test_checkpoint_file_location(manager, state_dir):
    manager.create_checkpoint("p1", "build", "/ws", metadata={"attempt": 2})

    path = state_dir / "p1" / "checkpoints" / "build.json"
    assert path.exists()
    assert manager.load_checkpoint("p1", "build").metadata == {"attempt": 2}


def test_checkpoint_timestamp_is_timezone_aware(manager):
    checkpoint = manager.create_checkpoint("p1", "s1", "/ws")
    assert checkpoint.timestamp.tzinfo is not None


def test_checkpoint_sequence_tracks_rollback_log(manager):
    """A checkpoint remembers how far the log had progressed."""
    first = manager.create_checkpoint("p1", "s1", "/ws")
    assert first.sequence == 0

    manager.log_operation("p1", RollbackOperation(type=OperationType.FILE_CREATED, target="/ws/a"))
    manager.log_operation("p1", RollbackOperation(type=OperationType.FILE_CREATED, target="/ws/b"))

    second = manager.create_checkpoint("p1", "s2", "/ws")
    assert second.sequence == 2


def test_recreating_checkpoint_replaces_it(manager):
    manager.create_checkpoint("p1", "s1", "/ws", {"a": "/a"})
    manager.create_checkpoint("p1", "s1", "/ws", {"b": "/b"})

    assert manager.load_checkpoint("p1", "s1").artifacts == {"b": "/b"}
    assert len(manager.list_checkpoints("p1")) == 1


def test_load_missing_checkpoint(manager):
    with pytest.raises(CheckpointNotFoundError) as exc_info:
        manager.load_checkpoint("p1", "nope")

    assert exc_info.value.pipeline_id == "p1"
    assert exc_info.value.step_id == "nope"


def test_load_corrupt_checkpoint(manager, state_dir):
    manager.create_checkpoint("p1", "s1", "/ws")
    (state_dir / "p1" / "checkpoints" / "s1.json").write_text("{not json")

    with pytest.raises(CorruptRecordError):
        manager.load_checkpoint("p1", "s1")


def test_list_checkpoints_in_creation_order(manager, state_dir):
    for step in ("zeta", "alpha", "mid"):
        manager.create_checkpoint("p1", step, "/ws")

    # An unreadable record is skipped, not fatal
    (state_dir / "p1" / "checkpoints" / "broken.json").write_text("garbage")

    steps = [cp.step_id for cp in manager.list_checkpoints("p1")]
    assert steps == ["zeta", "alpha", "mid"]


def test_list_checkpoints_unknown_pipeline(manager):
    assert manager.list_checkpoints("never-ran") == []


@pytest.mark.parametrize("bad_id", ["", "..", "a/b", "a\\b"])
def test_invalid_identifiers_rejected(manager, bad_id):
    with pytest.raises(ValueError):
        manager.create_checkpoint(bad_id, "s1", "/ws")
    with pytest.raises(ValueError):
        manager.create_checkpoint("p1", bad_id, "/ws")


def test_checkpoint_with_invalid_utf8_is_corrupt(manager, state_dir):
    manager.init_rollback_log("p1")
    manager.create_checkpoint("p1", "s1", "/ws")
    manager.create_checkpoint("p1", "s2", "/ws")
    (state_dir / "p1" / "checkpoints" / "s1.json").write_bytes(b"\xff\xfe\x00garbage")

    with pytest.raises(CorruptRecordError):
        manager.load_checkpoint("p1", "s1")

    assert [cp.step_id for cp in manager.list_checkpoints("p1")] == ["s2"]
    assert "Step: s2" in manager.get_rollback_plan("p1")
