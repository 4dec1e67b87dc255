"""Tests for shellkeeper.config."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from shellkeeper.config import (
    ProtocolConfig,
    ShellConfig,
    ShellKeeperConfig,
    TransferConfig,
)

_ENV_VARS = [
    "SHELLKEEPER_SHELL",
    "SHELLKEEPER_CWD",
    "SHELLKEEPER_DEFAULT_TIMEOUT",
    "SHELLKEEPER_MAX_TIMEOUT",
    "SHELLKEEPER_MAX_FILE_SIZE",
    "SHELLKEEPER_CHUNK_SIZE",
    "SHELLKEEPER_TRANSFER_TIMEOUT",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestProtocolConfig:
    def test_defaults(self) -> None:
        cfg = ProtocolConfig()
        assert cfg.default_timeout == 30
        assert (cfg.min_timeout, cfg.max_timeout) == (1, 120)

    @pytest.mark.parametrize(
        ("given", "expected"),
        [(None, 30), (0.01, 1), (-5, 1), (45, 45), (500, 120)],
    )
    def test_clamp(self, given: float | None, expected: float) -> None:
        assert ProtocolConfig().clamp(given) == expected


class TestTransferConfig:
    def test_defaults(self) -> None:
        cfg = TransferConfig()
        assert cfg.max_file_size == 10 * 1024 * 1024
        assert cfg.chunk_size == 50_000

    @pytest.mark.parametrize(
        ("given", "expected"),
        [(None, 300), (0, 1), (60, 60), (3600, 300)],
    )
    def test_clamp(self, given: float | None, expected: float) -> None:
        assert TransferConfig().clamp(given) == expected


class TestShellConfig:
    def test_shell_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHELL", "/usr/bin/fish")
        assert ShellConfig().shell == "/usr/bin/fish"

    def test_shell_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHELL", raising=False)
        assert ShellConfig().shell == "/bin/bash"

    def test_build_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROMPT_COMMAND", "history -a")
        env = ShellConfig(env={"FOO": "bar"}).build_env()
        assert env["TERM"] == "xterm-256color"
        assert env["PS1"] == "[READY]\\$ "
        assert env["SSH_ASKPASS"] == ""
        assert env["GIT_TERMINAL_PROMPT"] == "0"
        assert env["FOO"] == "bar"
        assert "PROMPT_COMMAND" not in env

    def test_rejects_tiny_window(self) -> None:
        with pytest.raises(ValueError):
            ShellConfig(cols=5)


class TestLoad:
    def test_defaults(self) -> None:
        cfg = ShellKeeperConfig.load()
        assert cfg.default_session == "default"
        assert cfg.protocol == ProtocolConfig()

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg = ShellKeeperConfig.load(str(tmp_path / "absent.json"))
        assert cfg.transfer == TransferConfig()

    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "default_session": "main",
                    "shell": {"shell": "/bin/zsh", "cols": 200},
                    "protocol": {"default_timeout": 10},
                }
            )
        )
        cfg = ShellKeeperConfig.load(str(path))
        assert cfg.default_session == "main"
        assert cfg.shell.shell == "/bin/zsh"
        assert cfg.shell.cols == 200
        assert cfg.protocol.default_timeout == 10

    def test_env_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"shell": {"shell": "/bin/zsh"}}))
        monkeypatch.setenv("SHELLKEEPER_SHELL", "/bin/dash")
        monkeypatch.setenv("SHELLKEEPER_CWD", "/srv")
        monkeypatch.setenv("SHELLKEEPER_DEFAULT_TIMEOUT", "15")
        monkeypatch.setenv("SHELLKEEPER_MAX_TIMEOUT", "60")
        monkeypatch.setenv("SHELLKEEPER_MAX_FILE_SIZE", "1024")
        monkeypatch.setenv("SHELLKEEPER_CHUNK_SIZE", "100")
        monkeypatch.setenv("SHELLKEEPER_TRANSFER_TIMEOUT", "90")

        cfg = ShellKeeperConfig.load(str(path))
        assert cfg.shell.shell == "/bin/dash"
        assert cfg.shell.cwd == "/srv"
        assert cfg.protocol.default_timeout == 15
        assert cfg.protocol.max_timeout == 60
        assert cfg.transfer.max_file_size == 1024
        assert cfg.transfer.chunk_size == 100
        assert cfg.transfer.timeout == 90
