from __future__ import annotations

import pytest

from resmand.config import ResmandConfig
from resmand.exceptions import ResmandConfigError


def test_defaults() -> None:
    config = ResmandConfig()

    assert config.preprocessor == "/usr/bin/cpp"
    assert config.service_name == "org.regolith.Trawl"
    assert config.object_path == "/org/regolith/Trawl"
    assert config.bootstrap_file is None
    assert not config.disable_preprocessing


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESMAND_PREPROCESSOR", "/opt/bin/m4")
    monkeypatch.setenv("RESMAND_BOOTSTRAP_FILE", "/etc/resmand/defaults")
    monkeypatch.setenv("RESMAND_NOCPP", "yes")
    monkeypatch.setenv("RESMAND_PORT", "7070")

    config = ResmandConfig.from_env()

    assert config.preprocessor == "/opt/bin/m4"
    assert config.bootstrap_file == "/etc/resmand/defaults"
    assert config.disable_preprocessing
    assert config.port == 7070


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESMAND_SERVICE_NAME", "org.env.Name")
    monkeypatch.setenv("RESMAND_NOCPP", "1")

    config = ResmandConfig.from_env(service_name="org.explicit.Name", disable_preprocessing=False)

    assert config.service_name == "org.explicit.Name"
    assert not config.disable_preprocessing


def test_invalid_port_env_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESMAND_PORT", "not-a-port")

    with pytest.raises(ResmandConfigError):
        ResmandConfig.from_env()


def test_invalid_object_path_rejected() -> None:
    with pytest.raises(ResmandConfigError):
        ResmandConfig(object_path="org/regolith/Trawl")


def test_profiles_select_preprocessor() -> None:
    assert ResmandConfig.for_profile("legacy").preprocessor == "/usr/bin/cpp"
    assert ResmandConfig.for_profile("default").preprocessor == "/run/current-system/sw/bin/cpp"
    assert ResmandConfig.for_profile("default", preprocessor="/bin/m4").preprocessor == "/bin/m4"

    with pytest.raises(ResmandConfigError):
        ResmandConfig.for_profile("unknown")


def test_socket_path_derived_from_runtime_dir(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1000")

    assert ResmandConfig().resolved_socket_path == "/run/user/1000/resmand/org.regolith.Trawl.sock"
    assert ResmandConfig(socket_path="/tmp/x.sock").resolved_socket_path == "/tmp/x.sock"
