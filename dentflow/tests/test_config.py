import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from dentflow.config import load_settings
from dentflow.schema import SessionSnapshot
from dentflow.storage import SnapshotPathError, read_snapshot, write_snapshot


def test_settings_defaults():
    settings = load_settings(env={})
    assert settings.grouping_mode == "individual"
    assert settings.slot_count == 15
    assert settings.bulk_condition_mode is False


def test_settings_from_environment():
    settings = load_settings(
        env={"DENTFLOW_GROUPING_MODE": "grouped", "DENTFLOW_SLOT_COUNT": "20", "DENTFLOW_BULK_CONDITION_MODE": "true"}
    )
    assert settings.grouping_mode == "grouped"
    assert settings.slot_count == 20
    assert settings.bulk_condition_mode is True


def test_invalid_settings_raise():
    with pytest.raises(ValidationError):
        load_settings(env={"DENTFLOW_GROUPING_MODE": "by-quadrant"})
    with pytest.raises(ValidationError):
        load_settings(env={"DENTFLOW_SLOT_COUNT": "0"})


def test_dotenv_file_is_read(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("DENTFLOW_SLOT_COUNT", raising=False)
    env_file = tmp_path / ".env.local"
    env_file.write_text("# local\nDENTFLOW_SLOT_COUNT=9\n", encoding="utf-8")
    try:
        assert load_settings(env_file=env_file).slot_count == 9
    finally:
        os.environ.pop("DENTFLOW_SLOT_COUNT", None)


def test_snapshot_paths_stay_inside_root(tmp_path: Path):
    snap = SessionSnapshot(catalog_version="abc")
    path = write_snapshot(tmp_path, "sessions/a.json", snap)
    assert path.exists()
    assert read_snapshot(tmp_path, "sessions/a.json") == snap
    with pytest.raises(SnapshotPathError):
        write_snapshot(tmp_path, "../escape.json", snap)
