"""Speech-to-text collaborators: gateway envelope, direct retry, Groq Whisper."""
import base64
import json
from types import SimpleNamespace

import pytest
import requests

from ai.groq_client import GroqTranscriber
from app.core.exceptions import CollaboratorUnavailable
from app.services.transcription_service import HttpTranscriber, build_transcriber

AUDIO = b"RIFF....WAVEfmt "
ENCODED = base64.b64encode(AUDIO).decode("ascii")


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.ok = status_code < 400

    def json(self):
        return self.payload


class FakeHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append(json)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_gateway_envelope_with_string_body():
    http = FakeHttp(FakeResponse({"statusCode": 200, "body": json.dumps({"transcript": " need 2 dolo "})}))
    transcriber = HttpTranscriber("http://stt.local", http=http)

    assert transcriber.transcribe(AUDIO) == "need 2 dolo"
    assert http.posts == [{"body": json.dumps({"data": ENCODED}), "isBase64Encoded": False}]


def test_retries_with_direct_body_once():
    http = FakeHttp(
        FakeResponse({"message": "bad request"}, status_code=400),
        FakeResponse({"transcript": "buy crocin"}),
    )
    transcriber = HttpTranscriber("http://stt.local", http=http)

    assert transcriber.transcribe(AUDIO) == "buy crocin"
    assert http.posts[1] == {"data": ENCODED}


def test_missing_transcript_is_empty():
    http = FakeHttp(FakeResponse({"body": {"other": 1}}))
    assert HttpTranscriber("http://stt.local", http=http).transcribe(AUDIO) == ""


def test_both_attempts_failing_raises():
    http = FakeHttp(requests.ConnectionError("refused"), FakeResponse({}, status_code=502))
    with pytest.raises(CollaboratorUnavailable) as exc:
        HttpTranscriber("http://stt.local", http=http).transcribe(AUDIO)
    assert exc.value.collaborator == "transcriber"
    assert len(http.posts) == 2


class FakeGroqClient:
    def __init__(self, text="", error=None):
        self.calls = []
        self.text = text
        self.error = error
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self.create))

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


def test_groq_transcriber_uses_whisper_model():
    client = FakeGroqClient(text=" I need 3 ParacetamolXL ")
    transcriber = GroqTranscriber(api_key="", model="whisper-large-v3", client=client)

    assert transcriber.transcribe(AUDIO, "voice.webm") == "I need 3 ParacetamolXL"
    assert client.calls[0]["file"] == ("voice.webm", AUDIO)
    assert client.calls[0]["model"] == "whisper-large-v3"


def test_groq_without_key_is_unavailable():
    transcriber = GroqTranscriber(api_key="")
    assert not transcriber.is_available()
    with pytest.raises(CollaboratorUnavailable):
        transcriber.transcribe(AUDIO)


class SttSettings:
    STT_PROVIDER = "http"
    STT_API_URL = "http://stt.local"
    GROQ_API_KEY = ""
    GROQ_STT_MODEL = "whisper-large-v3"
    EXTERNAL_TIMEOUT_SECONDS = 7


def test_build_transcriber():
    settings = SttSettings()
    http = build_transcriber(settings)
    assert isinstance(http, HttpTranscriber)
    assert http.timeout == 7

    settings.STT_PROVIDER = "groq"
    assert isinstance(build_transcriber(settings), GroqTranscriber)
