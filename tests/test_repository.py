import json

import pytest

from fieldsurvey.app.errors import DecodeError, IOFailure
from fieldsurvey.db.repository import ExportRepository, sanitize_group_name

from conftest import make_record, make_survey


def test_save_and_load_survey(tmp_path):
    repo = ExportRepository(tmp_path / "SurveyExports")
    survey = make_survey([make_record(1, "Yes")], location="Main St")
    path = repo.save_survey(survey)

    assert path.name.startswith("survey_results_")
    assert repo.list_export_files() == [path]
    assert repo.load_survey(path) == survey


def test_saves_do_not_overwrite(tmp_path):
    repo = ExportRepository(tmp_path)
    paths = {repo.save_survey(make_survey([make_record(1, "Yes")])) for _ in range(5)}
    assert len(paths) == 5


def test_list_skips_hidden_and_non_json(tmp_path):
    (tmp_path / ".hidden.json").write_text("{}")
    (tmp_path / "notes.txt").write_text("x")
    (tmp_path / "UPPER.JSON").write_text("{}")
    repo = ExportRepository(tmp_path)
    assert [p.name for p in repo.list_export_files()] == ["UPPER.JSON"]


def test_save_aggregation_names(tmp_path):
    repo = ExportRepository(tmp_path)
    overall = repo.save_aggregation({"statistics": {}})
    grouped = repo.save_aggregation({"statistics": {}}, group="Main St/North")
    assert overall.name.startswith("aggregation_results_")
    assert grouped.name.startswith("location_Main_St_North_")
    assert json.loads(grouped.read_text()) == {"statistics": {}}
    assert sanitize_group_name("  ") == "Unknown"


def test_clear_deletes_json_exports(tmp_path):
    repo = ExportRepository(tmp_path)
    repo.save_survey(make_survey([]))
    repo.save_aggregation({})
    (tmp_path / "keep.txt").write_text("x")
    assert repo.clear() == 2
    assert repo.list_export_files() == []
    assert (tmp_path / "keep.txt").exists()


def test_read_errors(tmp_path):
    repo = ExportRepository(tmp_path)
    with pytest.raises(IOFailure):
        repo.read_text(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2")
    with pytest.raises(DecodeError):
        repo.load_survey(bad)


def test_directory_that_is_a_file_is_io_failure(tmp_path):
    blocker = tmp_path / "exports"
    blocker.write_text("not a directory")
    with pytest.raises(IOFailure):
        ExportRepository(blocker).ensure_directory()
