"""
Runtime configuration, read from the environment.
"""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from typing import Mapping, Optional


# Variables passed through to the backend child process; nothing else leaks.
BACKEND_ENV_ALLOWLIST = (
    "PATH",
    "NODE_ENV",
    "HOME",
    "USER",
    "LANG",
    "TERM",
    "SHELL",
    "NODE_PATH",
    "NPM_CONFIG_REGISTRY",
    "npm_config_registry",
)

LLM_PROVIDERS = {"azure", "openai"}
TOOL_CHOICES = {"auto", "required", "none"}


@dataclass
class LlmSettings:
    provider: str = "azure"
    # Azure OpenAI
    azure_endpoint: Optional[str] = None
    azure_deployment: str = "gpt-4o"
    azure_api_version: str = "2024-08-01-preview"
    azure_api_key: Optional[str] = None
    # OpenAI-compatible endpoint (OpenAI itself, or a Claude-compatible proxy)
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = "claude-sonnet-4-5-20250514"
    tool_choice: str = "required"

    @property
    def model_name(self) -> str:
        return self.azure_deployment if self.provider == "azure" else self.model


@dataclass
class BackendSettings:
    command: str = sys.executable
    args: list[str] = field(default_factory=lambda: ["-m", "drawio_chat.backend"])
    client_name: str = "drawio-chat"
    client_version: str = "1.0.0"

    def child_env(self, environ: Mapping[str, str] | None = None) -> dict[str, str]:
        environ = os.environ if environ is None else environ
        return {k: environ[k] for k in BACKEND_ENV_ALLOWLIST if environ.get(k)}


@dataclass
class Limits:
    max_xml_size: int = 1024 * 1024
    max_messages: int = 50
    max_message_length: int = 10000
    request_timeout: float = 30.0


@dataclass
class Settings:
    llm: LlmSettings = field(default_factory=LlmSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)
    limits: Limits = field(default_factory=Limits)
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        provider = env.get("LLM_PROVIDER", "azure").strip().lower()
        if provider == "claude":
            provider = "openai"
        if provider not in LLM_PROVIDERS:
            raise ValueError(
                f"LLM_PROVIDER must be one of {sorted(LLM_PROVIDERS | {'claude'})}, got '{provider}'."
            )
        tool_choice = env.get("LLM_TOOL_CHOICE", "required").strip().lower()
        if tool_choice not in TOOL_CHOICES:
            raise ValueError(f"LLM_TOOL_CHOICE must be one of {sorted(TOOL_CHOICES)}.")

        llm = LlmSettings(
            provider=provider,
            azure_endpoint=env.get("AZURE_OPENAI_ENDPOINT"),
            azure_deployment=env.get("AZURE_OPENAI_DEPLOYMENT", "gpt-4o"),
            azure_api_version=env.get("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"),
            azure_api_key=env.get("AZURE_OPENAI_API_KEY"),
            api_key=env.get("OPENAI_API_KEY") or env.get("CLAUDE_API_KEY"),
            base_url=env.get("OPENAI_BASE_URL") or env.get("CLAUDE_BASE_URL"),
            model=env.get("LLM_MODEL") or env.get("CLAUDE_MODEL") or LlmSettings.model,
            tool_choice=tool_choice,
        )

        backend = BackendSettings()
        if env.get("DRAWIO_BACKEND_COMMAND"):
            backend.command = env["DRAWIO_BACKEND_COMMAND"]
            backend.args = shlex.split(env.get("DRAWIO_BACKEND_ARGS", ""))

        limits = Limits()
        if env.get("DRAWIO_CHAT_REQUEST_TIMEOUT"):
            limits.request_timeout = float(env["DRAWIO_CHAT_REQUEST_TIMEOUT"])

        return cls(
            llm=llm,
            backend=backend,
            limits=limits,
            host=env.get("DRAWIO_CHAT_HOST", "127.0.0.1"),
            port=int(env.get("DRAWIO_CHAT_PORT", "8000")),
            log_level=env.get("DRAWIO_CHAT_LOG_LEVEL", "INFO").upper(),
        )
