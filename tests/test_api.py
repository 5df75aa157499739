import json

import pytest
from fastapi.testclient import TestClient

from adapters.local.memory_rate_limiter import InMemoryRateLimiter
from api import create_app
from config import get_config
from conftest import FakeAudio, FakeTranscription
from domain.errors import DecodeError, TranscriptionProviderError

TRANSCRIPT = json.dumps({"segments": [
    {"speaker": "Speaker 1", "timestamp": "00:00", "text": "Test transcription"},
    {"speaker": "Speaker 2", "timestamp": "00:04", "text": "Second line"},
]})


class _Harness:
    def __init__(self, tmp_path, responses=None, valid=True, duration=10.0, factory_error=None):
        self.transcription = FakeTranscription(responses or [TRANSCRIPT], valid=valid)
        self.keys: list[str] = []
        self.audio_adapters: list[FakeAudio] = []
        self.limiter = InMemoryRateLimiter()
        self._tmp_path = tmp_path
        self._duration = duration
        self._factory_error = factory_error
        self.client = TestClient(create_app(
            cfg=get_config(),
            rate_limiter=self.limiter,
            transcription_factory=self._make_transcription,
            audio_factory=self._make_audio,
        ))

    def _make_transcription(self, api_key):
        self.keys.append(api_key)
        if self._factory_error:
            raise self._factory_error
        return self.transcription

    def _make_audio(self):
        adapter = FakeAudio(self._duration, self._tmp_path)
        self.audio_adapters.append(adapter)
        return adapter


@pytest.fixture
def harness(tmp_path):
    return _Harness(tmp_path)


def _post_transcribe(client, files=True, content_type="audio/mp3", **data):
    form = {"apiKey": "test-api-key"}
    form.update({k: v for k, v in data.items() if v is not None})
    kwargs = {"data": form}
    if files:
        kwargs["files"] = {"audio": ("test.mp3", b"ID3fake", content_type)}
    return client.post("/transcribe", **kwargs)


def test_transcribes_audio_successfully(harness):
    response = _post_transcribe(harness.client, systemPrompt="Test prompt", speakerCount="2")

    assert response.status_code == 200
    body = response.json()
    assert len(body["segments"]) == 2
    assert body["segments"][0]["text"] == "Test transcription"
    assert body["metadata"]["speakerCount"] == 2
    assert body["metadata"]["duration"] == "00:10"
    assert "processedAt" in body["metadata"]

    assert harness.keys == ["test-api-key"]
    call = harness.transcription.calls[0]
    assert call["audio_bytes"] == b"ID3fake"
    assert call["system_prompt"] == "Test prompt"
    assert harness.audio_adapters[0].cleaned_up


def test_uses_default_speaker_count(harness):
    response = _post_transcribe(harness.client)

    assert response.status_code == 200
    assert response.json()["metadata"]["speakerCount"] == 2
    assert "approximately 2 speakers" in harness.transcription.calls[0]["prompt"]
    assert harness.transcription.calls[0]["system_prompt"] is None


def test_mpeg_content_type_is_sent_to_provider_as_mp3(harness):
    _post_transcribe(harness.client, content_type="audio/mpeg")

    assert harness.transcription.calls[0]["mime_type"] == "audio/mp3"


def test_missing_audio_returns_400_without_contacting_provider(harness):
    response = _post_transcribe(harness.client, files=False)

    assert response.status_code == 400
    assert "Missing required fields" in response.json()["error"]
    assert harness.keys == []


def test_missing_api_key_returns_400(harness):
    response = harness.client.post(
        "/transcribe",
        files={"audio": ("test.mp3", b"ID3fake", "audio/mp3")},
    )

    assert response.status_code == 400
    assert "Missing required fields" in response.json()["error"]


def test_invalid_audio_type_returns_400(harness):
    response = _post_transcribe(harness.client, content_type="text/plain")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid audio file type"


@pytest.mark.parametrize("value", ["zero", "0", "-3"])
def test_invalid_speaker_count_returns_400(harness, value):
    response = _post_transcribe(harness.client, speakerCount=value)

    assert response.status_code == 400
    assert "speakerCount" in response.json()["error"]


def test_invalid_api_key_returns_401(tmp_path):
    harness = _Harness(tmp_path, valid=False)

    response = _post_transcribe(harness.client, apiKey="invalid-key")

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid API key"
    assert harness.transcription.calls == []


def test_provider_failure_returns_500_with_message(tmp_path):
    harness = _Harness(tmp_path, responses=[TranscriptionProviderError("Transcription failed")])

    response = _post_transcribe(harness.client)

    assert response.status_code == 500
    assert response.json()["error"] == "Transcription failed"
    assert harness.audio_adapters[0].cleaned_up


def test_undecodable_audio_returns_500(tmp_path, monkeypatch):
    harness = _Harness(tmp_path)

    def _segment(*args, **kwargs):
        raise DecodeError("Could not decode audio: invalid data")

    monkeypatch.setattr(FakeAudio, "segment", _segment)

    response = _post_transcribe(harness.client)

    assert response.status_code == 500
    assert "Could not decode" in response.json()["error"]
    assert harness.transcription.calls == []
    assert harness.audio_adapters[0].cleaned_up


def test_sixth_request_in_window_is_rate_limited(harness):
    statuses = [_post_transcribe(harness.client, files=False).status_code for _ in range(5)]
    response = _post_transcribe(harness.client)

    assert statuses == [400] * 5
    assert response.status_code == 429
    assert "Too many requests" in response.json()["error"]
    assert response.headers["x-ratelimit-remaining"] == "0"
    assert harness.keys == []
    assert harness.transcription.calls == []


def test_admitted_requests_report_remaining_budget(harness):
    first = _post_transcribe(harness.client)
    second = _post_transcribe(harness.client, files=False)

    assert first.status_code == 200
    assert first.headers["x-ratelimit-remaining"] == "4"
    assert second.headers["x-ratelimit-remaining"] == "3"
    assert "x-ratelimit-remaining" not in harness.client.get("/health").headers


def test_rate_limit_is_per_identity(harness):
    for _ in range(5):
        _post_transcribe(harness.client, files=False)

    response = harness.client.post(
        "/transcribe",
        data={"apiKey": "k"},
        headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1"},
    )

    assert response.status_code == 400


def test_options_preflight(harness):
    response = harness.client.options("/transcribe")

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert response.headers["access-control-allow-headers"] == "Content-Type"


def test_validate_key(harness):
    response = harness.client.post("/validate-key", json={"apiKey": "valid-api-key"})

    assert response.status_code == 200
    assert response.json() == {"valid": True}
    assert harness.keys == ["valid-api-key"]


def test_validate_key_reports_invalid(tmp_path):
    harness = _Harness(tmp_path, valid=False)

    response = harness.client.post("/validate-key", json={"apiKey": "nope"})

    assert response.json() == {"valid": False}


def test_validate_key_requires_key(harness):
    response = harness.client.post("/validate-key", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "API key is required"


def test_validate_key_malformed_body(harness):
    response = harness.client.post(
        "/validate-key",
        content=b"not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert "error" in response.json()


def test_validate_key_internal_failure(tmp_path):
    harness = _Harness(tmp_path, factory_error=RuntimeError("sdk exploded"))

    response = harness.client.post("/validate-key", json={"apiKey": "k"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to validate API key"


def test_validate_key_is_not_rate_limited(harness):
    for _ in range(6):
        response = harness.client.post("/validate-key", json={"apiKey": "k"})
    assert response.status_code == 200


def test_export_text_and_json(harness):
    transcript = _post_transcribe(harness.client).json()

    text = harness.client.post(
        "/export", json={"result": transcript, "fileName": "test.mp3", "format": "txt"},
    )
    assert text.status_code == 200
    assert text.headers["content-disposition"].startswith('attachment; filename="test_transcription.txt"')
    assert text.text.startswith("[00:00] Speaker 1: Test transcription\n\n")

    as_json = harness.client.post(
        "/export", json={"result": transcript, "fileName": "test.mp3", "format": "json"},
    )
    assert 'filename="test_transcription.json"' in as_json.headers["content-disposition"]
    assert [s["speaker_id"] for s in as_json.json()["speakers"]] == ["Speaker 1", "Speaker 2"]


def test_export_with_non_ascii_file_name(harness):
    transcript = _post_transcribe(harness.client).json()

    response = harness.client.post(
        "/export", json={"result": transcript, "fileName": "会議.mp3", "format": "txt"},
    )

    assert response.status_code == 200
    disposition = response.headers["content-disposition"]
    assert 'filename="audio_transcription.txt"' in disposition
    assert "filename*=UTF-8''%E4%BC%9A%E8%AD%B0_transcription.txt" in disposition


def test_health(harness):
    assert harness.client.get("/health").json() == {"status": "ok"}
