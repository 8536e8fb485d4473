"""Tests for settings loading and engine wiring."""

import tempfile
from pathlib import Path

import yaml

from pipesync.config import Settings, load_settings
from pipesync.engine import build_engine, build_notifier
from pipesync.models.tracked_item import MonitoredField
from pipesync.notify.base import LogNotifier
from pipesync.notify.telegram import TelegramNotifier
from pipesync.sources.yaml_document import YamlDocumentSource


def _write_config(tmpdir: str, data: dict) -> Path:
    path = Path(tmpdir) / "pipesync.yaml"
    path.write_text(yaml.dump(data))
    return path


def test_defaults():
    settings = load_settings(environ={})
    assert settings.poll_interval_sec == 300
    assert settings.max_retries == 3
    assert settings.summary_threshold is None
    assert settings.ignored_transitions == []
    assert settings.validate() == []
    assert not settings.telegram_configured


def test_yaml_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write_config(tmpdir, {
            "poll_interval_sec": 60,
            "max_workers": 4,
            "summary_threshold": 3,
            "call_timeout": None,
            "ignored_transitions": [{"field": "voice", "from": "Not Ready", "to": "Not Started"}],
        })
        settings = load_settings(path, environ={})

        assert settings.poll_interval_sec == 60
        assert settings.max_workers == 4
        assert settings.summary_threshold == 3
        assert settings.call_timeout is None
        assert settings.ignored_transitions == [(MonitoredField.VOICE, "Not Ready", "Not Started")]


def test_environment_overrides_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write_config(tmpdir, {"poll_interval_sec": 60, "log_level": "DEBUG"})
        settings = load_settings(path, environ={
            "PIPESYNC_POLL_INTERVAL_SEC": "15",
            "PIPESYNC_RETRY_BASE_DELAY": "0.5",
            "TELEGRAM_BOT_TOKEN": "123:abc",
            "TELEGRAM_CHAT_ID": "-100",
        })
        assert settings.poll_interval_sec == 15
        assert settings.retry_base_delay == 0.5
        assert settings.log_level == "DEBUG"
        assert settings.telegram_configured


def test_unknown_setting_is_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write_config(tmpdir, {"poll_intervall": 60})
        try:
            load_settings(path, environ={})
        except ValueError as e:
            assert "poll_intervall" in str(e)
        else:
            raise AssertionError("expected ValueError")


def test_ignored_transition_without_field_is_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write_config(tmpdir, {"ignored_transitions": [{"from": "Not Ready", "to": "Not Started"}]})
        try:
            load_settings(path, environ={})
        except ValueError as e:
            assert "field" in str(e)
        else:
            raise AssertionError("expected ValueError")


def test_ignored_transition_with_unknown_field_is_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write_config(tmpdir, {"ignored_transitions": [{"field": "thumbnail", "to": "Done"}]})
        try:
            load_settings(path, environ={})
        except ValueError as e:
            assert "thumbnail" in str(e)
        else:
            raise AssertionError("expected ValueError")


def test_validate_reports_issues():
    settings = Settings(poll_interval_sec=0, max_workers=0, log_level="LOUD", telegram_bot_token="t")
    issues = settings.validate()
    assert len(issues) == 4
    assert any("poll_interval_sec" in i for i in issues)
    assert any("TELEGRAM" in i for i in issues)


def test_build_notifier():
    assert isinstance(build_notifier(Settings()), LogNotifier)
    notifier = build_notifier(Settings(telegram_bot_token="123:abc", telegram_chat_id="-100"))
    assert isinstance(notifier, TelegramNotifier)
    notifier.close()


def test_build_engine_from_settings():
    with tempfile.TemporaryDirectory() as tmpdir:
        state = Path(tmpdir) / "pipeline.yaml"
        state.write_text(yaml.dump({"items": [{"id": "VID-1", "approval": "Pending"}]}))
        settings = Settings(
            snapshot_path=str(Path(tmpdir) / "snapshot.json"),
            state_path=str(state),
            max_retries=5,
        )
        loop = build_engine(settings)

        assert isinstance(loop.source, YamlDocumentSource)
        assert loop.retry_policy.max_attempts == 5
        assert loop.run_once().first_run


def test_build_engine_rejects_invalid_settings():
    try:
        build_engine(Settings(max_retries=0))
    except ValueError as e:
        assert "max_retries" in str(e)
    else:
        raise AssertionError("expected ValueError")
