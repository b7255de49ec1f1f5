from unittest.mock import AsyncMock, patch

from testharbor.reaper.__main__ import main, parse_args
from testharbor.reaper.sweeper import SweepReport


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("REAPER_PORT", raising=False)
    args = parse_args([])
    assert args.host == "0.0.0.0"
    assert args.port == 8080
    assert args.connection_timeout == 60.0
    assert args.reconnection_timeout == 10.0


def test_port_from_environment(monkeypatch):
    monkeypatch.setenv("REAPER_PORT", "9090")
    assert parse_args([]).port == 9090


def test_parse_args_overrides():
    args = parse_args(["--port", "1234", "--reconnection-timeout", "2.5"])
    assert args.port == 1234
    assert args.reconnection_timeout == 2.5


def _run_main(report):
    with (
        patch("testharbor.reaper.__main__.docker.from_env") as from_env,
        patch("testharbor.reaper.__main__.ReaperAgent") as agent_cls,
        patch("testharbor.reaper.__main__.configure_logging"),
    ):
        agent_cls.return_value.serve = AsyncMock(return_value=report)
        code = main(["--port", "0", "--connection-timeout", "1"])
    from_env.return_value.close.assert_called_once()
    kwargs = agent_cls.call_args.kwargs
    assert kwargs["port"] == 0
    assert kwargs["connection_timeout"] == 1.0
    return code


def test_main_exit_code_clean_sweep():
    assert _run_main(SweepReport(removed=["container/a"])) == 0


def test_main_exit_code_nobody_connected():
    assert _run_main(None) == 0


def test_main_exit_code_failed_sweep():
    assert _run_main(SweepReport(errors={"container/a": "busy"})) == 1
