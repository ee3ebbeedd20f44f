import base64
from types import SimpleNamespace

import httpx
import pytest

from jigsaw_app import openai_client
from jigsaw_app.errors import GenerationFailure


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def fake_client(content=None, images=None):
    return SimpleNamespace(
        chat=SimpleNamespace(completions=FakeCompletions(content)),
        images=images,
    )


def test_month_prompt_is_stripped(monkeypatch):
    client = fake_client("  Holi colours in spring  \n")
    monkeypatch.setattr(openai_client, "get_client", lambda: client)

    assert openai_client.generate_month_prompt("March") == "Holi colours in spring"
    sent = client.chat.completions.calls[0]["messages"][0]["content"]
    assert "month of March" in sent
    assert "max 10 words" in sent


def test_empty_month_prompt_fails(monkeypatch):
    monkeypatch.setattr(openai_client, "get_client", lambda: fake_client(""))

    with pytest.raises(GenerationFailure):
        openai_client.generate_month_prompt("March")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(openai_client, "OPENAI_API_KEY", "")

    with pytest.raises(GenerationFailure):
        openai_client.get_client()


def test_image_from_b64_json(monkeypatch):
    images = SimpleNamespace(
        generate=lambda **kwargs: SimpleNamespace(
            data=[SimpleNamespace(url=None, b64_json=base64.b64encode(b"png-bytes").decode())]
        )
    )
    monkeypatch.setattr(openai_client, "get_client", lambda: fake_client(images=images))

    assert openai_client.generate_image_from_prompt("kites over Jaipur") == b"png-bytes"


def test_image_without_payload_fails(monkeypatch):
    images = SimpleNamespace(
        generate=lambda **kwargs: SimpleNamespace(data=[SimpleNamespace(url=None, b64_json=None)])
    )
    monkeypatch.setattr(openai_client, "get_client", lambda: fake_client(images=images))

    with pytest.raises(GenerationFailure):
        openai_client.generate_image_from_prompt("kites over Jaipur")


def test_clipdrop_success(monkeypatch):
    seen = {}

    def fake_post(url, json, headers, timeout):
        seen.update(url=url, json=json, headers=headers)
        return httpx.Response(200, content=b"\x89PNG...", request=httpx.Request("POST", url))

    monkeypatch.setattr(openai_client, "CLIPDROP_API_KEY", "test-key")
    monkeypatch.setattr(openai_client.httpx, "post", fake_post)

    assert openai_client.clipdrop_image_from_prompt("Diwali") == b"\x89PNG..."
    assert seen["json"] == {"prompt": "Diwali"}
    assert seen["headers"]["x-api-key"] == "test-key"


def test_clipdrop_error_status(monkeypatch):
    def fake_post(url, json, headers, timeout):
        return httpx.Response(402, text="out of credits", request=httpx.Request("POST", url))

    monkeypatch.setattr(openai_client, "CLIPDROP_API_KEY", "test-key")
    monkeypatch.setattr(openai_client.httpx, "post", fake_post)

    with pytest.raises(GenerationFailure):
        openai_client.clipdrop_image_from_prompt("Diwali")


def test_clipdrop_timeout(monkeypatch):
    def fake_post(url, json, headers, timeout):
        raise httpx.ReadTimeout("timed out")

    monkeypatch.setattr(openai_client, "CLIPDROP_API_KEY", "test-key")
    monkeypatch.setattr(openai_client.httpx, "post", fake_post)

    with pytest.raises(GenerationFailure):
        openai_client.clipdrop_image_from_prompt("Diwali")


def test_image_generator_backends():
    assert openai_client.image_generator("openai") is openai_client.generate_image_from_prompt
    assert openai_client.image_generator("clipdrop") is openai_client.clipdrop_image_from_prompt
    with pytest.raises(ValueError):
        openai_client.image_generator("dalle-on-a-napkin")
