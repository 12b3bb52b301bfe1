from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from resmand.cli import (
    _client_config,
    _daemon_config,
    _parse_client_args,
    _parse_daemon_args,
    client_main,
    run_client,
    run_daemon,
)
from resmand.config import ResmandConfig


def test_load_option_wins_over_positional_filename() -> None:
    args = _parse_daemon_args(["positional.conf", "--load", "explicit.conf", "--nocpp"])

    config = _daemon_config(args)

    assert config.bootstrap_file == "explicit.conf"
    assert config.disable_preprocessing


def test_daemon_args_map_to_config() -> None:
    args = _parse_daemon_args(["--cpp", "/bin/m4", "--service-name", "org.example.Res", "--host", "127.0.0.1", "--port", "9000"])

    config = _daemon_config(args)

    assert config.preprocessor == "/bin/m4"
    assert config.service_name == "org.example.Res"
    assert (config.host, config.port) == ("127.0.0.1", 9000)
    assert config.bootstrap_file is None


def test_profile_sets_preprocessor_unless_cpp_given() -> None:
    assert _daemon_config(_parse_daemon_args(["--profile", "default"])).preprocessor == "/run/current-system/sw/bin/cpp"
    assert _daemon_config(_parse_daemon_args(["--profile", "default", "--cpp", "/bin/m4"])).preprocessor == "/bin/m4"


def test_client_args() -> None:
    args = _parse_client_args(["-query"])
    assert args.query == ""

    args = _parse_client_args(["-load", "file", "-cpp", "/bin/m4", "-cpp-args=-P -DX"])
    assert (args.load, args.cpp, args.cpp_args) == ("file", "/bin/m4", "-P -DX")

    args = _parse_client_args(["-set", "k", "v", "-socket", "/tmp/s.sock"])
    assert args.set == ["k", "v"]
    assert _client_config(args).socket_path == "/tmp/s.sock"


def test_client_requires_an_action() -> None:
    with pytest.raises(SystemExit):
        _parse_client_args([])


def test_client_main_reports_unreachable_daemon(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    status = client_main(["-query", "-socket", str(tmp_path / "nobody-home.sock")])

    assert status == 1
    assert "resmandb:" in capsys.readouterr().err


async def _wait_for_socket(path: Path) -> None:
    for _ in range(200):
        if path.exists():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("daemon never started listening")


@pytest.mark.asyncio
async def test_daemon_bootstraps_and_serves_client_commands(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    socket_path = tmp_path / "resmand.sock"
    boot = tmp_path / "boot"
    boot.write_text("alpha: x\nbeta: y\n", encoding="utf-8")
    config = ResmandConfig(socket_path=str(socket_path), bootstrap_file=str(boot), disable_preprocessing=True)
    stop = asyncio.Event()
    daemon = asyncio.create_task(run_daemon(config, stop_event=stop))

    try:
        await _wait_for_socket(socket_path)
        client_config = ResmandConfig(socket_path=str(socket_path))

        await run_client(_parse_client_args(["-query", "a"]), client_config)
        assert capsys.readouterr().out == "alpha :\tx\nbeta :\ty\n"

        await run_client(_parse_client_args(["-set", "gamma", "z"]), client_config)
        await run_client(_parse_client_args(["-get", "gamma"]), client_config)
        assert capsys.readouterr().out == "z\n"

        await run_client(_parse_client_args(["-remove", "gamma"]), client_config)
        assert capsys.readouterr().out == "gamma :\tz\n"
    finally:
        stop.set()
        await asyncio.wait_for(daemon, timeout=5.0)

    assert not socket_path.exists()
