"""Configuration — Pydantic models for shellkeeper settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _default_shell() -> str:
    return os.environ.get("SHELL") or "/bin/bash"


def _default_cwd() -> str:
    return os.environ.get("HOME") or os.getcwd()


class ShellConfig(BaseModel):
    """How a session's shell is launched.

    The prompt is only a visual aid for humans reading the raw buffer;
    command completion is detected with markers, never with the prompt.
    """

    shell: str = Field(default_factory=_default_shell)
    args: list[str] = Field(default_factory=lambda: ["-i"])
    cwd: str = Field(default_factory=_default_cwd)
    cols: int = Field(default=160, ge=20)
    rows: int = Field(default=40, ge=5)
    term: str = Field(default="xterm-256color")
    prompt: str = Field(default="[READY]\\$ ", description="Installed as PS1")
    env: dict[str, str] = Field(default_factory=dict)

    def build_env(self) -> dict[str, str]:
        """Environment for the spawned shell (no interactive credential prompts)."""
        env = {**os.environ, **self.env}
        env["TERM"] = self.term
        env["PS1"] = self.prompt
        env["SSH_ASKPASS"] = ""
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.pop("PROMPT_COMMAND", None)
        return env


class ProtocolConfig(BaseModel):
    """Timing policy for the command-completion protocol (seconds)."""

    default_timeout: float = Field(default=30.0, gt=0)
    min_timeout: float = Field(default=1.0, gt=0)
    max_timeout: float = Field(default=120.0, gt=0)
    settle_delay: float = Field(
        default=0.2, ge=0, description="Wait after clearing the buffer, before writing"
    )
    write_delay: float = Field(
        default=0.1, ge=0, description="Wait between the four protocol writes"
    )
    prompt_delay: float = Field(
        default=0.3, ge=0, description="Wait after the end marker for the prompt"
    )
    poll_interval: float = Field(default=0.1, gt=0)
    startup_delay: float = Field(
        default=0.5, ge=0, description="Wait after spawning a new session"
    )

    def clamp(self, timeout: float | None) -> float:
        """Clamp a caller-supplied timeout into [min_timeout, max_timeout]."""
        if timeout is None:
            timeout = self.default_timeout
        return min(max(timeout, self.min_timeout), self.max_timeout)


class TransferConfig(BaseModel):
    """File transfer policy."""

    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    chunk_size: int = Field(
        default=50_000, gt=0, description="Base64 characters per shell command"
    )
    timeout: float = Field(
        default=300.0, gt=0, description="Default and ceiling for a whole transfer"
    )
    probe_timeout: float = Field(default=5.0, gt=0)
    step_timeout: float = Field(default=30.0, gt=0)
    scratch_dir: str = Field(default="/tmp")

    def clamp(self, timeout: float | None) -> float:
        if timeout is None:
            return self.timeout
        return min(max(timeout, 1.0), self.timeout)


class ShellKeeperConfig(BaseModel):
    """Top-level shellkeeper configuration."""

    shell: ShellConfig = Field(default_factory=ShellConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    default_session: str = Field(default="default")

    @classmethod
    def load(cls, config_path: str | None = None) -> ShellKeeperConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            SHELLKEEPER_SHELL              - Shell binary for new sessions
            SHELLKEEPER_CWD                - Working directory for new sessions
            SHELLKEEPER_DEFAULT_TIMEOUT    - Default per-command timeout (seconds)
            SHELLKEEPER_MAX_TIMEOUT        - Upper clamp for per-command timeouts
            SHELLKEEPER_MAX_FILE_SIZE      - Transfer size limit (bytes)
            SHELLKEEPER_CHUNK_SIZE         - Base64 characters per upload command
            SHELLKEEPER_TRANSFER_TIMEOUT   - Default and ceiling for transfers (seconds)
        """
        load_dotenv()

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        shell = config_data.get("shell", {})
        protocol = config_data.get("protocol", {})
        transfer = config_data.get("transfer", {})

        env_shell = os.environ.get("SHELLKEEPER_SHELL")
        if env_shell:
            shell["shell"] = env_shell

        env_cwd = os.environ.get("SHELLKEEPER_CWD")
        if env_cwd:
            shell["cwd"] = env_cwd

        env_timeout = os.environ.get("SHELLKEEPER_DEFAULT_TIMEOUT")
        if env_timeout:
            protocol["default_timeout"] = float(env_timeout)

        env_max_timeout = os.environ.get("SHELLKEEPER_MAX_TIMEOUT")
        if env_max_timeout:
            protocol["max_timeout"] = float(env_max_timeout)

        env_max_size = os.environ.get("SHELLKEEPER_MAX_FILE_SIZE")
        if env_max_size:
            transfer["max_file_size"] = int(env_max_size)

        env_chunk = os.environ.get("SHELLKEEPER_CHUNK_SIZE")
        if env_chunk:
            transfer["chunk_size"] = int(env_chunk)

        env_transfer_timeout = os.environ.get("SHELLKEEPER_TRANSFER_TIMEOUT")
        if env_transfer_timeout:
            transfer["timeout"] = float(env_transfer_timeout)

        if shell:
            config_data["shell"] = shell
        if protocol:
            config_data["protocol"] = protocol
        if transfer:
            config_data["transfer"] = transfer

        return cls.model_validate(config_data)
