import json

import pytest

from fieldsurvey.app import runtime as runtime_module
from fieldsurvey.app.config import Settings
from fieldsurvey.app.errors import IOFailure, MalformedResponse
from fieldsurvey.app.runtime import build_runtime
from fieldsurvey.tools.stats import DEFAULT_GROUP

from conftest import CATALOG_DATA, REPLY, StubLLM


def make_settings(tmp_path, **overrides):
    values = dict(
        exports_dir=str(tmp_path / "exports"),
        catalog_path=str(tmp_path / "questionnaire.json"),
        log_level="DEBUG",
        log_json=False,
        llm_provider="openai",
        openai_model="gpt-4o-mini",
        gemini_model="gemini-2.0-flash-exp",
        openai_api_key="sk-test",
        gemini_api_key="",
        temperature=0.3,
        request_timeout_seconds=60,
        skip_invalid_matches=False,
        aggregation_workers=1,
    )
    values.update(overrides)
    return Settings(**values)


# One valid element plus one missing every field but the id.
MIXED_REPLY = "[" + REPLY[1:-1] + ', {"matched_question_id": 3}]'


@pytest.fixture
def logging_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(runtime_module, "setup_logging", lambda level, json_logs: calls.append((level, json_logs)))
    return calls


@pytest.fixture
def settings_dir(tmp_path):
    (tmp_path / "questionnaire.json").write_text(json.dumps(CATALOG_DATA), encoding="utf-8")
    return tmp_path


def test_logging_configured_from_settings(settings_dir, logging_calls):
    build_runtime(make_settings(settings_dir), llm=StubLLM())
    assert logging_calls == [("DEBUG", False)]


def test_catalog_and_exports_dir_come_from_settings(settings_dir, logging_calls):
    rt = build_runtime(make_settings(settings_dir), llm=StubLLM(reply=REPLY))

    assert rt.catalog.title == "Street Assessment"
    assert rt.repository.exports_dir == settings_dir / "exports"

    result = rt.record_session("I can see trees")
    assert result.path.parent == settings_dir / "exports"
    assert result.survey.questionnaire_title == "Street Assessment"


def test_missing_catalog_fails_at_startup(tmp_path, logging_calls):
    with pytest.raises(IOFailure):
        build_runtime(make_settings(tmp_path), llm=StubLLM())


def test_skip_invalid_matches_setting_reaches_parser(settings_dir, logging_calls):
    strict = build_runtime(make_settings(settings_dir), llm=StubLLM(reply=MIXED_REPLY))
    with pytest.raises(MalformedResponse):
        strict.record_session("trees, and it feels fine")

    lenient = build_runtime(
        make_settings(settings_dir, skip_invalid_matches=True), llm=StubLLM(reply=MIXED_REPLY)
    )
    result = lenient.record_session("trees, and it feels fine")
    assert [r.question_id for r in result.survey.matched_questions] == [2]


def test_provider_override(settings_dir, logging_calls):
    rt = build_runtime(make_settings(settings_dir, gemini_api_key="g-key"), provider="gemini", llm=StubLLM())
    assert rt.agent.provider.provider == "gemini"
    assert rt.agent.provider.api_key == "g-key"


def test_aggregate_uses_configured_workers(settings_dir, logging_calls, monkeypatch):
    seen = {}
    real = runtime_module.aggregate_directory

    def spy(repository, **kwargs):
        seen.update(kwargs)
        return real(repository, **kwargs)

    monkeypatch.setattr(runtime_module, "aggregate_directory", spy)

    rt = build_runtime(make_settings(settings_dir, aggregation_workers=3), llm=StubLLM(reply=REPLY))
    rt.record_session("I can see trees")
    run = rt.aggregate()

    assert seen["max_workers"] == 3
    assert seen["catalog"] is rt.catalog
    assert run.files_processed == 1
    assert run.results[DEFAULT_GROUP].per_question[2].affirmative == 1
