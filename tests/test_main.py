"""Tests for the command-line entry point."""

from __future__ import annotations

import functools

import pytest

import agentrelay.__main__ as cli
from agentrelay.session.session_manager import SessionManager
from tests.utils import FakeQuery, assistant, init_message, result, text


@pytest.fixture
def fake_query():
    return FakeQuery(init_message("sess-1"), assistant(text("Printed reply")), result("sess-1"))


@pytest.fixture
def patched_main(monkeypatch, config, fake_query):
    """Run main() against the test config and a fake backend."""
    monkeypatch.setattr(cli, "load_config", lambda working_dir=None: config)
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli, "SessionManager", functools.partial(SessionManager, query_fn=fake_query))
    return cli.main


class TestParser:
    def test_defaults(self):
        args = cli.create_parser().parse_args([])
        assert args.chat_id == "console"
        assert args.verbose is None
        assert args.message is None

    def test_verbosity_counts(self):
        assert cli.create_parser().parse_args(["-vvv"]).verbose == 3


class TestMain:
    def test_print_mode(self, patched_main, fake_query, capsys):
        assert patched_main(["-p", "hello"]) == 0
        assert "Printed reply" in capsys.readouterr().out
        assert fake_query.prompt.endswith("hello")

    def test_model_option(self, patched_main, fake_query):
        assert patched_main(["--model", "sonnet 4.5", "-p", "hi"]) == 0
        assert fake_query.options.model == "claude-sonnet-4-5"

    def test_bad_model(self, patched_main, capsys):
        assert patched_main(["--model", "claude haiku", "-p", "hi"]) == 2
        assert "opus 4.6" in capsys.readouterr().out

    def test_resume_unknown(self, patched_main, capsys):
        assert patched_main(["--resume", "nope", "-p", "hi"]) == 2
        assert "Session not found" in capsys.readouterr().out

    def test_resume_last_with_no_history(self, patched_main):
        assert patched_main(["--resume", "last", "-p", "hi"]) == 0

    def test_failed_turn_exit_code(self, monkeypatch, config, capsys):
        failing = FakeQuery(result("sess-1", is_error=True, result_text="overloaded"))
        monkeypatch.setattr(cli, "load_config", lambda working_dir=None: config)
        monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
        monkeypatch.setattr(cli, "SessionManager", functools.partial(SessionManager, query_fn=failing))

        assert cli.main(["-p", "hi"]) == 1
        assert "overloaded" in capsys.readouterr().out
