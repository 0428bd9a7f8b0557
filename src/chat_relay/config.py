import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

DEFAULT_MODEL = "gpt-4o-mini"

DEFAULT_SIMPLE_SYSTEM_PROMPT = (
    "You are a helpful podcast assistant. Keep responses concise and friendly."
)

DEFAULT_TOOLS_SYSTEM_PROMPT = """You are a helpful assistant.
When you call a tool, you MUST wait for the result and then provide a natural language response explaining the information you received.
Never end your response after calling a tool - always interpret and explain the tool results to the user."""


@dataclass
class Settings:
    model: str = DEFAULT_MODEL
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    max_steps: int = 5
    simple_system_prompt: str = DEFAULT_SIMPLE_SYSTEM_PROMPT
    tools_system_prompt: str = DEFAULT_TOOLS_SYSTEM_PROMPT
    allow_origin: str = "*"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings() -> Settings:
    """Read settings from the environment (and a ``.env`` file if present)."""
    load_dotenv(find_dotenv(usecwd=True))

    max_steps = _parse_int("CHAT_RELAY_MAX_STEPS", 5)
    if max_steps < 1:
        raise ValueError(f"CHAT_RELAY_MAX_STEPS must be at least 1, got {max_steps}")

    return Settings(
        model=os.getenv("CHAT_RELAY_MODEL", DEFAULT_MODEL),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        max_steps=max_steps,
        simple_system_prompt=os.getenv(
            "CHAT_RELAY_SIMPLE_SYSTEM_PROMPT", DEFAULT_SIMPLE_SYSTEM_PROMPT
        ),
        tools_system_prompt=os.getenv(
            "CHAT_RELAY_TOOLS_SYSTEM_PROMPT", DEFAULT_TOOLS_SYSTEM_PROMPT
        ),
        allow_origin=os.getenv("CHAT_RELAY_ALLOW_ORIGIN", "*"),
        host=os.getenv("CHAT_RELAY_HOST", "0.0.0.0"),
        port=_parse_int("CHAT_RELAY_PORT", 8000),
        log_level=os.getenv("CHAT_RELAY_LOG_LEVEL", "INFO").upper(),
    )
