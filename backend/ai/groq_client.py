"""
Groq API Client: Whisper speech-to-text for voice orders.

================================================================================
CRITICAL: THIS CLIENT ONLY TRANSCRIBES
================================================================================

Audio goes in, text comes out. The transcript is then handled exactly like a
typed message: rule-based intent parser, policy gate, checkout.

THIS CLIENT DOES NOT:
- Extract intent or pick medicines
- Touch the inventory store or the checkout session
- Retry on permanent API errors

================================================================================
"""

import logging
from typing import Optional

from groq import Groq, APIError, APITimeoutError, RateLimitError

from app.core.exceptions import CollaboratorUnavailable
from app.services.transcription_service import Transcriber

# Configure logging (NEVER log API keys)
logger = logging.getLogger(__name__)


class GroqTranscriber(Transcriber):
    """
    Minimal, secure wrapper for Groq audio transcription.

    - Model: whisper-large-v3 unless GROQ_STT_MODEL says otherwise
    - Temperature: 0 (same audio = same text)
    - Timeout: EXTERNAL_TIMEOUT_SECONDS
    - Any API failure raises CollaboratorUnavailable
    """

    name = "groq"
    TEMPERATURE = 0

    def __init__(self, api_key: str, model: str = "whisper-large-v3", timeout: float = 10,
                 client: Optional[Groq] = None):
        self.model = model
        if client is not None:
            self.client = client
        elif not api_key:
            logger.warning(
                "GROQ_API_KEY not found in environment. "
                "Voice transcription will be UNAVAILABLE. "
                "Add your key to backend/.env file."
            )
            self.client = None
        else:
            self.client = Groq(api_key=api_key, timeout=timeout)
            logger.info("Groq transcription client initialized")

    def is_available(self) -> bool:
        """Check if Groq client is ready to use."""
        return self.client is not None

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        if not self.is_available():
            raise CollaboratorUnavailable("transcriber", "GROQ_API_KEY not configured")

        try:
            result = self.client.audio.transcriptions.create(
                file=(filename, audio),
                model=self.model,
                temperature=self.TEMPERATURE,
            )
        except APITimeoutError as e:
            logger.warning("Groq transcription timed out")
            raise CollaboratorUnavailable("transcriber", "timeout") from e
        except RateLimitError as e:
            logger.warning("Groq rate limit exceeded")
            raise CollaboratorUnavailable("transcriber", "rate limited") from e
        except APIError as e:
            logger.error(f"Groq API error: {e}")
            raise CollaboratorUnavailable("transcriber", "api error") from e

        text = (getattr(result, "text", "") or "").strip()
        logger.debug(f"Transcript received: {len(text)} chars")
        return text
