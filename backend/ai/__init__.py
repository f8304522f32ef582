"""AI Module for Groq integration.

Only speech-to-text lives here. Intent extraction stays rule-based in
app.agent.intent_parser; a transcript is treated exactly like typed text.
"""

from .groq_client import GroqTranscriber

__all__ = ["GroqTranscriber"]
