"""Tests for the text embedding providers."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from src.errors import EmbeddingUnavailable
from src.memory.embeddings import Embedder, _flatten


def _mock_httpx_client(mock_client_cls: MagicMock, response=None, error=None) -> AsyncMock:
    """Wire up an AsyncClient context-manager mock whose post returns *response*."""
    mock_client = AsyncMock()
    if error is not None:
        mock_client.post.side_effect = error
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


def _hf_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json=payload,
        request=httpx.Request("POST", "https://api-inference.huggingface.co/pipeline"),
    )


# -- _flatten ----------------------------------------------------------------


def test_flatten_nested_vector() -> None:
    assert _flatten([[0.1, 0.2, 0.3]]) == [0.1, 0.2, 0.3]


def test_flatten_plain_vector() -> None:
    assert _flatten([1, 2]) == [1.0, 2.0]


@pytest.mark.parametrize("raw", [[], {"error": "loading"}, [["a", "b"]]])
def test_flatten_rejects_bad_payloads(raw) -> None:
    with pytest.raises(EmbeddingUnavailable):
        _flatten(raw)


# -- Hugging Face ------------------------------------------------------------


async def test_huggingface_embed() -> None:
    with patch("src.memory.embeddings.httpx.AsyncClient") as mock_cls:
        client = _mock_httpx_client(mock_cls, _hf_response([[0.5, 0.25]]))
        vector = await Embedder(provider="huggingface").embed("hello there")

    assert vector == [0.5, 0.25]
    _, kwargs = client.post.call_args
    assert kwargs["json"] == {"inputs": "hello there", "options": {"wait_for_model": True}}


async def test_huggingface_sends_token(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.huggingface_api_key", "hf-test")
    with patch("src.memory.embeddings.httpx.AsyncClient") as mock_cls:
        client = _mock_httpx_client(mock_cls, _hf_response([0.1]))
        await Embedder(provider="huggingface").embed("hi")

    _, kwargs = client.post.call_args
    assert kwargs["headers"]["Authorization"] == "Bearer hf-test"


async def test_huggingface_error_status() -> None:
    with patch("src.memory.embeddings.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, _hf_response({"error": "overloaded"}, status_code=503))
        with pytest.raises(EmbeddingUnavailable, match="503"):
            await Embedder(provider="huggingface").embed("hi")


async def test_huggingface_network_error() -> None:
    with patch("src.memory.embeddings.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, error=httpx.ConnectError("refused"))
        with pytest.raises(EmbeddingUnavailable) as exc_info:
            await Embedder(provider="huggingface").embed("hi")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


async def test_blank_text_rejected_without_request() -> None:
    with patch("src.memory.embeddings.httpx.AsyncClient") as mock_cls:
        with pytest.raises(EmbeddingUnavailable, match="required"):
            await Embedder(provider="huggingface").embed("   ")
    mock_cls.assert_not_called()


# -- OpenAI ------------------------------------------------------------------


async def test_openai_embed() -> None:
    response = MagicMock()
    response.data = [MagicMock(embedding=[0.3, 0.4])]
    client = MagicMock()
    client.embeddings.create = AsyncMock(return_value=response)

    with patch("src.memory.embeddings.get_openai_client", return_value=client):
        vector = await Embedder(provider="openai").embed("hello")

    assert vector == [0.3, 0.4]
    assert client.embeddings.create.call_args.kwargs["input"] == "hello"


async def test_openai_error_translated() -> None:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        side_effect=openai.APIConnectionError(request=httpx.Request("POST", "https://x"))
    )

    with (
        patch("src.memory.embeddings.get_openai_client", return_value=client),
        pytest.raises(EmbeddingUnavailable),
    ):
        await Embedder(provider="openai").embed("hello")


async def test_huggingface_non_json_body() -> None:
    html = httpx.Response(
        status_code=200,
        content=b"<html>Model is loading</html>",
        request=httpx.Request("POST", "https://api-inference.huggingface.co/pipeline"),
    )
    with patch("src.memory.embeddings.httpx.AsyncClient") as mock_cls:
        _mock_httpx_client(mock_cls, html)
        with pytest.raises(EmbeddingUnavailable, match="not valid JSON"):
            await Embedder(provider="huggingface").embed("hello world")
