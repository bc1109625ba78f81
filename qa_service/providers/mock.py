"""Mock provider for demo mode and tests: deterministic, offline, no streaming."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

CANNED_ANSWERS = {
    "hello": "Hello! I'm an AI assistant. How can I help you today?",
    "goodbye": "Goodbye! Have a great day!",
    "thanks": "You're welcome! Glad I could help.",
    "how is the weather today": (
        "Sorry, I can't access real-time weather. "
        "Please check a weather forecast app or website."
    ),
    "who are you": "I'm an AI assistant that answers your questions.",
}


class MockProvider:
    """Answers from a small canned table, otherwise with a templated reply."""

    @property
    def name(self) -> str:
        return "Mock Provider (demo mode)"

    async def ask(self, question: str) -> str:
        key = question.strip().rstrip("?!.").lower()
        if key in CANNED_ANSWERS:
            return CANNED_ANSWERS[key]
        return (
            f"Thanks for your question: \"{question}\". This is a simulated answer "
            "because the service is running in demo mode. Configure an LLM "
            "provider to get real answers."
        )

    async def check_connection(self) -> None:
        logger.info("Mock provider connection check passed")
