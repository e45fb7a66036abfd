"""AI layer: model client, prompts, tools and turn orchestration."""

from .client import AIClient, AIStreamEvent, ClientSettings, build_chat_messages
from .prompts import build_system_prompt

__all__ = [
    "AIClient",
    "AIStreamEvent",
    "ClientSettings",
    "build_chat_messages",
    "build_system_prompt",
]
