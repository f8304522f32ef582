"""
Speech-to-text collaborators.

Transcription is best-effort: failures raise CollaboratorUnavailable and never
touch checkout state. An empty transcript is a normal result ("").
"""
import base64
import json
import logging

import requests

from app.core.exceptions import CollaboratorUnavailable

logger = logging.getLogger(__name__)


class Transcriber:
    name = "base"

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        raise NotImplementedError


def _extract_transcript(outer) -> str:
    # Gateway responses wrap the payload; body may itself be a JSON string
    if not isinstance(outer, dict):
        raise ValueError("STT response is not an object")
    body = outer.get("body", outer)
    if isinstance(body, str):
        body = json.loads(body)
    if not isinstance(body, dict):
        return ""
    return str(body.get("transcript") or "").strip()


class HttpTranscriber(Transcriber):
    """
    STT API gateway client.

    First attempt sends the gateway envelope
        {"body": "{\"data\": \"<base64>\"}", "isBase64Encoded": false}
    and, if that is rejected, one retry with the direct shape {"data": "<base64>"}.
    """

    name = "http"

    def __init__(self, url: str, timeout: float = 10, http=None):
        if not url:
            raise ValueError("HttpTranscriber requires STT_API_URL")
        self.url = url
        self.timeout = timeout
        self.http = http or requests.Session()

    def _call(self, payload: dict) -> str:
        resp = self.http.post(self.url, json=payload, timeout=self.timeout)
        if not resp.ok:
            raise requests.HTTPError(f"STT API failed: {resp.status_code}", response=resp)
        return _extract_transcript(resp.json())

    def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        data = base64.b64encode(audio).decode("ascii")
        try:
            return self._call({"body": json.dumps({"data": data}), "isBase64Encoded": False})
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[Transcriber] Gateway envelope rejected ({e}); retrying with direct body")

        try:
            transcript = self._call({"data": data})
        except (requests.RequestException, ValueError) as e:
            raise CollaboratorUnavailable("transcriber", str(e)) from e
        logger.info(f"[Transcriber] Transcript received: {len(transcript)} chars")
        return transcript


def build_transcriber(settings) -> Transcriber:
    """Transcriber for STT_PROVIDER; groq is imported only when selected."""
    if settings.STT_PROVIDER == "groq":
        from ai.groq_client import GroqTranscriber

        return GroqTranscriber(
            api_key=settings.GROQ_API_KEY,
            model=settings.GROQ_STT_MODEL,
            timeout=settings.EXTERNAL_TIMEOUT_SECONDS,
        )
    return HttpTranscriber(settings.STT_API_URL, timeout=settings.EXTERNAL_TIMEOUT_SECONDS)
