"""Tests for environment-driven settings."""

import sys

import pytest

from drawio_chat.config import BackendSettings, Settings
from drawio_chat.llm_client import LlmClient


def test_defaults() -> None:
    s = Settings.from_env({})
    assert s.llm.provider == "azure"
    assert s.llm.tool_choice == "required"
    assert s.llm.model_name == "gpt-4o"
    assert s.backend.command == sys.executable
    assert s.backend.args == ["-m", "drawio_chat.backend"]
    assert s.limits.max_xml_size == 1024 * 1024
    assert s.limits.max_messages == 50
    assert s.limits.max_message_length == 10000
    assert s.port == 8000


def test_claude_is_an_openai_compatible_alias() -> None:
    s = Settings.from_env({
        "LLM_PROVIDER": "Claude",
        "CLAUDE_API_KEY": "k",
        "CLAUDE_BASE_URL": "https://proxy.example/v1",
        "CLAUDE_MODEL": "claude-x",
    })
    assert s.llm.provider == "openai"
    assert s.llm.api_key == "k"
    assert s.llm.base_url == "https://proxy.example/v1"
    assert s.llm.model_name == "claude-x"


def test_azure_settings() -> None:
    s = Settings.from_env({
        "AZURE_OPENAI_ENDPOINT": "https://example.openai.azure.com",
        "AZURE_OPENAI_DEPLOYMENT": "diagrams",
        "AZURE_OPENAI_API_KEY": "secret",
    })
    assert s.llm.azure_endpoint == "https://example.openai.azure.com"
    assert s.llm.model_name == "diagrams"


@pytest.mark.parametrize("env", [
    {"LLM_PROVIDER": "gemini"},
    {"LLM_TOOL_CHOICE": "sometimes"},
])
def test_invalid_values(env) -> None:
    with pytest.raises(ValueError):
        Settings.from_env(env)


def test_backend_command_and_server_overrides() -> None:
    s = Settings.from_env({
        "DRAWIO_BACKEND_COMMAND": "npx",
        "DRAWIO_BACKEND_ARGS": "-y @next-ai-drawio/mcp-server --port '6002'",
        "DRAWIO_CHAT_REQUEST_TIMEOUT": "12.5",
        "DRAWIO_CHAT_PORT": "9000",
        "DRAWIO_CHAT_LOG_LEVEL": "debug",
    })
    assert s.backend.command == "npx"
    assert s.backend.args == ["-y", "@next-ai-drawio/mcp-server", "--port", "6002"]
    assert s.limits.request_timeout == 12.5
    assert s.port == 9000
    assert s.log_level == "DEBUG"


def test_child_env_is_allowlisted() -> None:
    env = BackendSettings().child_env({
        "PATH": "/usr/bin",
        "HOME": "/home/u",
        "OPENAI_API_KEY": "secret",
        "AZURE_OPENAI_API_KEY": "secret",
        "LANG": "",
    })
    assert env == {"PATH": "/usr/bin", "HOME": "/home/u"}


def test_llm_request_arguments() -> None:
    s = Settings.from_env({"LLM_PROVIDER": "openai", "LLM_MODEL": "gpt-4o-mini",
                           "LLM_TOOL_CHOICE": "auto"})
    client = LlmClient(s.llm, client=object())
    tools = [{"type": "function", "function": {"name": "display_diagram"}}]
    kwargs = client._request([{"role": "user", "content": "hi"}], tools, None)
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["tool_choice"] == "auto"
    assert kwargs["tools"] == tools
    assert "tool_choice" not in client._request([], None, None)
