import threading

import pytest

from fieldsurvey.app.errors import AggregationCancelled
from fieldsurvey.db.repository import ExportRepository
from fieldsurvey.tools.stats import BY_LOCATION, DEFAULT_GROUP
from fieldsurvey.workflows.aggregate import aggregate_directory, load_surveys

from conftest import make_record, make_survey


@pytest.fixture
def repo(tmp_path):
    repo = ExportRepository(tmp_path)
    repo.save_survey(make_survey([make_record(1, "Yes"), make_record(2, "No")], location="Main St"))
    repo.save_survey(make_survey([make_record(1, "yes")], location="Park Ave"))
    repo.save_survey(make_survey([], location="Main St"))
    (tmp_path / "corrupt_1.json").write_text("{not json")
    (tmp_path / "corrupt_2.json").write_text('{"export_info": {}, "timestamp": 1}')
    return repo


def test_corrupt_files_are_skipped(repo, catalog):
    run = aggregate_directory(repo, catalog=catalog)
    result = run.results[DEFAULT_GROUP]

    assert run.files_seen == 5
    assert run.files_skipped == 2
    assert run.files_processed == 3
    assert sorted(run.skipped) == ["corrupt_1.json", "corrupt_2.json"]
    assert result.files_processed == 3
    assert result.per_question[3].unanswered == 3
    assert result.per_question[2].unanswered == 2
    assert result.per_question[1].affirmative == 2


def test_thread_pool_matches_serial(repo, catalog):
    serial = aggregate_directory(repo, catalog=catalog, max_workers=1)
    pooled = aggregate_directory(repo, catalog=catalog, max_workers=4)
    assert pooled.results[DEFAULT_GROUP].summary_text == serial.results[DEFAULT_GROUP].summary_text


def test_grouped_directory_aggregation(repo, catalog):
    run = aggregate_directory(repo, catalog=catalog, grouping=BY_LOCATION)
    assert sorted(run.results) == ["Main St", "Park Ave"]
    assert run.results["Main St"].files_processed == 2
    assert run.results["Park Ave"].files_processed == 1


def test_cancellation_before_first_file(repo):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(AggregationCancelled) as exc:
        aggregate_directory(repo, cancel_event=cancel)
    assert exc.value.files_processed == 0


def test_cancellation_between_files(repo):
    cancel = threading.Event()
    original = repo.load_survey

    def load_then_cancel(path):
        survey = original(path)
        cancel.set()
        return survey

    repo.load_survey = load_then_cancel
    with pytest.raises(AggregationCancelled):
        load_surveys(repo, cancel_event=cancel)


def test_empty_directory(tmp_path, catalog):
    run = aggregate_directory(ExportRepository(tmp_path), catalog=catalog)
    assert run.files_seen == 0
    assert run.results[DEFAULT_GROUP].files_processed == 0


def test_deeply_nested_file_is_skipped(tmp_path, catalog):
    repo = ExportRepository(tmp_path)
    repo.save_survey(make_survey([make_record(1, "Yes")]))
    (tmp_path / "corrupt_deep.json").write_text("[" * 100000 + "]" * 100000)

    run = aggregate_directory(repo, catalog=catalog)

    assert run.files_skipped == 1
    assert run.skipped == ("corrupt_deep.json",)
    assert run.results[DEFAULT_GROUP].per_question[1].affirmative == 1


def test_cancellation_with_thread_pool(repo):
    cancel = threading.Event()
    original = repo.load_survey

    def load_then_cancel(path):
        survey = original(path)
        cancel.set()
        return survey

    repo.load_survey = load_then_cancel
    with pytest.raises(AggregationCancelled) as exc:
        load_surveys(repo, cancel_event=cancel, max_workers=4)
    assert exc.value.files_processed < 5


def test_thread_pool_cancelled_before_start(repo):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(AggregationCancelled) as exc:
        aggregate_directory(repo, cancel_event=cancel, max_workers=4)
    assert exc.value.files_processed == 0
