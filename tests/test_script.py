"""Tests for scenario scripts, environment settings and logging setup."""

import io
import json
import sys

import pytest
import structlog

from justact_kernel.config.logging import configure_logging, get_logger
from justact_kernel.config.settings import JustActSettings
from justact_kernel.errors import CommandError
from justact_kernel.models.commands import (
    CheckCommand,
    DeclareAgentCommand,
    RollbackCommand,
)
from justact_kernel.session.script import load_script, parse_script


class TestParseScript:
    def test_json_array(self):
        commands = parse_script(
            '[{"kind": "declare_agent", "name": "A"}, {"kind": "check"}]'
        )
        assert commands == [DeclareAgentCommand(name="A"), CheckCommand()]

    def test_json_lines_with_comments(self):
        text = "\n".join([
            "# setup",
            '{"kind": "declare_agent", "name": "A", "capabilities": ["read"]}',
            "",
            '{"kind": "rollback", "sequence": 0}',
        ])
        commands = parse_script(text)
        assert commands == [
            DeclareAgentCommand(name="A", capabilities=["read"]),
            RollbackCommand(sequence=0),
        ]

    def test_empty_script(self):
        assert parse_script("\n# nothing here\n") == []

    def test_malformed_line(self):
        with pytest.raises(CommandError) as exc:
            parse_script('{"kind": "declare_agent", "name": "A"}\n{"kind": ')
        assert exc.value.reason == "malformed_script"
        assert "line 2" in exc.value.detail

    def test_malformed_array(self):
        with pytest.raises(CommandError) as exc:
            parse_script('[{"kind": "check"}')
        assert exc.value.reason == "malformed_script"

    def test_invalid_command_in_script(self):
        with pytest.raises(CommandError) as exc:
            parse_script('{"kind": "declare_agent", "name": "A", "color": "red"}')
        assert exc.value.reason == "malformed_command"

    def test_load_script(self, tmp_path):
        path = tmp_path / "scenario.jsonl"
        path.write_text('{"kind": "set_time", "now": 3}\n', encoding="utf-8")
        commands = load_script(path)
        assert len(commands) == 1
        assert commands[0].kind == "set_time"


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("JUSTACT_EVALUATOR_COMMAND", raising=False)
        settings = JustActSettings(_env_file=None)
        assert settings.evaluator_command == []
        assert settings.evaluator_timeout_seconds == 30.0
        assert settings.log_level == "INFO"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("JUSTACT_EVALUATOR_COMMAND", '["justact-eval", "--json"]')
        monkeypatch.setenv("JUSTACT_EVALUATOR_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("JUSTACT_LOG_LEVEL", "debug")
        settings = JustActSettings(_env_file=None)

        assert settings.evaluator_command == ["justact-eval", "--json"]
        assert settings.log_level == "DEBUG"

        config = settings.to_session_config()
        assert config.evaluator_command == ["justact-eval", "--json"]
        assert config.evaluator_timeout_seconds == 2.5
        assert config.record_rejections is True


class TestLogging:
    @pytest.fixture(autouse=True)
    def stderr(self, monkeypatch):
        stream = io.StringIO()
        monkeypatch.setattr(sys, "stderr", stream)
        yield stream
        structlog.reset_defaults()

    def test_json_events_on_stderr(self, stderr):
        configure_logging("debug", json_output=True)
        get_logger("justact_kernel.session").debug("command_applied", sequence=3)

        event = json.loads(stderr.getvalue().strip())
        assert event["event"] == "command_applied"
        assert event["sequence"] == 3
        assert event["level"] == "debug"
        assert "timestamp" in event

    def test_level_filters_events(self, stderr):
        configure_logging("WARNING", json_output=True)
        logger = get_logger("justact_kernel.session")
        logger.info("command_applied")
        logger.warning("evaluator_response_malformed")

        lines = stderr.getvalue().strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["evaluator_response_malformed"]

    def test_unknown_level_falls_back_to_info(self, stderr):
        configure_logging("chatty", json_output=True)
        logger = get_logger("justact_kernel.session")
        logger.debug("hidden")
        logger.info("shown")

        assert "hidden" not in stderr.getvalue()
        assert "shown" in stderr.getvalue()
