"""
Tests for the Provider Gateway and provider adapters.

Tests verify that the gateway:
- Always returns a result for the primary, even when it fails
- Fans out to alternatives concurrently with per-call isolation
- Drops failed/timed-out/unknown alternatives without raising
- Normalizes replies (default confidence, clamping, latency)
"""
import json
import time

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from decision_core.consensus.providers import HTTPProvider, OpenAIProvider, ProviderGateway
from decision_core.exceptions import APIKeyMissingError, LLMResponseError
from decision_core.models import ConsensusRequest


@pytest.mark.asyncio
async def test_primary_payload_and_result(gateway_factory, provider_factory, document_request):
    primary = provider_factory("yachtie", result={"expiry_date": "2027-03-01"}, confidence=0.93)
    gateway = gateway_factory(primary=primary)

    result = await gateway.invoke_primary(document_request)

    assert result.success is True
    assert result.provider_id == "yachtie"
    assert result.result == {"expiry_date": "2027-03-01"}
    assert result.confidence == 0.93
    assert result.latency_ms == 12

    payload = primary.calls[0]
    assert json.loads(payload["text"]) == document_request.data
    assert payload["task"] == "analyze"
    assert payload["context"] == "crew_documents"
    assert payload["options"]["timeoutMs"] == 30000


@pytest.mark.asyncio
async def test_primary_exception_becomes_failed_result(gateway_factory, provider_factory, document_request):
    gateway = gateway_factory(primary=provider_factory("yachtie", error=RuntimeError("model overloaded")))

    result = await gateway.invoke_primary(document_request)

    assert result.success is False
    assert result.confidence == 0.0
    assert result.result is None
    assert "model overloaded" in result.error


@pytest.mark.asyncio
async def test_primary_unsuccessful_reply_keeps_result(gateway_factory, provider_factory, document_request):
    gateway = gateway_factory(primary=provider_factory("yachtie", result="partial", confidence=None, success=False))

    result = await gateway.invoke_primary(document_request)

    assert result.success is False
    assert result.result == "partial"
    assert result.confidence == 0.0


@pytest.mark.asyncio
@pytest.mark.slow
async def test_primary_timeout(gateway_factory, provider_factory):
    gateway = gateway_factory(primary=provider_factory("yachtie", delay=1.0))
    request = ConsensusRequest(task="t", data={}, context="c", criticality_level="low", timeout_ms=50)

    result = await gateway.invoke_primary(request)

    assert result.success is False
    assert "timed out after 50ms" in result.error


@pytest.mark.asyncio
async def test_alternatives_skip_primary_duplicates_and_unknown(gateway_factory, provider_factory, document_request):
    openai_alt = provider_factory("openai", result="approved", confidence=0.8)
    gemini_alt = provider_factory("gemini", result="approved", confidence=0.7)
    primary = provider_factory("yachtie")
    gateway = gateway_factory(primary=primary, alternatives=[openai_alt, gemini_alt])

    results = await gateway.invoke_alternatives(
        document_request, ["yachtie", "gemini", "openai", "gemini", "not-configured"]
    )

    assert [r.provider_id for r in results] == ["gemini", "openai"]
    assert primary.calls == []
    assert len(gemini_alt.calls) == 1


@pytest.mark.asyncio
async def test_failed_alternatives_are_excluded(gateway_factory, provider_factory, document_request):
    gateway = gateway_factory(alternatives=[
        provider_factory("openai", confidence=0.8),
        provider_factory("gemini", error=ConnectionError("refused")),
        provider_factory("deepseek", success=False),
        provider_factory("mistral", confidence="very high"),
    ])

    results = await gateway.invoke_alternatives(document_request, ["openai", "gemini", "deepseek", "mistral"])

    assert [r.provider_id for r in results] == ["openai"]


@pytest.mark.asyncio
@pytest.mark.slow
async def test_slow_alternative_does_not_block_others(gateway_factory, provider_factory):
    """Each call has its own timeout; the slow one is dropped, the rest survive"""
    gateway = gateway_factory(alternatives=[
        provider_factory("openai", delay=0.05),
        provider_factory("gemini", delay=2.0),
        provider_factory("deepseek", delay=0.05),
    ])
    request = ConsensusRequest(task="t", data={}, context="c", criticality_level="critical", timeout_ms=300)

    start = time.monotonic()
    results = await gateway.invoke_alternatives(request, ["openai", "gemini", "deepseek"])
    elapsed = time.monotonic() - start

    assert [r.provider_id for r in results] == ["openai", "deepseek"]
    assert elapsed < 1.5


@pytest.mark.asyncio
@pytest.mark.slow
async def test_alternatives_run_concurrently(gateway_factory, provider_factory, document_request):
    gateway = gateway_factory(alternatives=[
        provider_factory(pid, delay=0.3) for pid in ["openai", "gemini", "deepseek"]
    ])

    start = time.monotonic()
    results = await gateway.invoke_alternatives(document_request, ["openai", "gemini", "deepseek"])
    elapsed = time.monotonic() - start

    assert len(results) == 3
    # Sequential would take >= 0.9s
    assert elapsed < 0.8


@pytest.mark.asyncio
async def test_missing_confidence_defaults_and_high_confidence_clamped(gateway_factory, provider_factory, document_request):
    gateway = gateway_factory(alternatives=[
        provider_factory("openai", confidence=None),
        provider_factory("gemini", confidence=1.4),
    ])

    results = await gateway.invoke_alternatives(document_request, ["openai", "gemini"])

    assert results[0].confidence == 0.8
    assert results[1].confidence == 1.0


@pytest.mark.asyncio
async def test_no_alternatives_requested(gateway_factory, document_request):
    gateway = gateway_factory()
    assert await gateway.invoke_alternatives(document_request, ["yachtie"]) == []


def test_alternative_ids_order(gateway_factory, provider_factory):
    gateway = gateway_factory(alternatives=[provider_factory("openai"), provider_factory("gemini")])
    assert gateway.primary_id == "yachtie"
    assert gateway.alternative_ids == ["openai", "gemini"]


class TestHTTPProvider:

    @pytest.mark.asyncio
    async def test_edge_function_reply_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "valid", "confidence": 0.77, "processingTime": 140})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = HTTPProvider("gemini", endpoint="https://inference.example.com/multi-ai-processor", client=client)
        gateway = ProviderGateway(primary=provider)

        request = ConsensusRequest(task="t", data={"a": 1}, context="c", criticality_level="low", timeout_ms=5000)
        result = await gateway.invoke_primary(request)
        await client.aclose()

        assert result.success is True
        assert result.result == "valid"
        assert result.confidence == 0.77
        assert result.latency_ms == 140
        assert seen["body"]["preferredProvider"] == "gemini"
        assert seen["body"]["timeout"] == 5000
        assert seen["body"]["task"] == "analyze"

    @pytest.mark.asyncio
    async def test_http_error_drops_alternative(self, provider_factory, document_request):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        gateway = ProviderGateway(
            primary=provider_factory("yachtie"),
            alternatives=[HTTPProvider("deepseek", endpoint="https://inference.example.com/x", client=client)]
        )

        results = await gateway.invoke_alternatives(document_request, ["deepseek"])
        await client.aclose()

        assert results == []

    @pytest.mark.asyncio
    async def test_error_field_reported_as_failure(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"error": "quota exceeded"})
        ))
        provider = HTTPProvider("gemini", endpoint="https://inference.example.com/x", client=client)

        reply = await provider.invoke({"text": "{}", "task": "analyze", "context": "", "options": {}})
        await client.aclose()

        assert reply == {"success": False, "error": "quota exceeded"}


class TestOpenAIProvider:

    @staticmethod
    def _completion(content: str) -> MagicMock:
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        return response

    @pytest.mark.asyncio
    @pytest.mark.llm
    async def test_json_reply_parsed(self):
        provider = OpenAIProvider("openai", model="gpt-4o-mini", api_key="test-key")
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(
            return_value=self._completion('{"result": "approved", "confidence": 0.82}')
        )

        reply = await provider.invoke({"text": "{}", "task": "analyze", "context": "", "options": {}})

        assert reply["success"] is True
        assert reply["result"] == "approved"
        assert reply["confidence"] == 0.82
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    @pytest.mark.llm
    async def test_invalid_json_raises(self):
        provider = OpenAIProvider("openai", api_key="test-key")
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(return_value=self._completion("not json {{"))

        with pytest.raises(LLMResponseError):
            await provider.invoke({"text": "{}", "task": "analyze", "context": "", "options": {}})

    @pytest.mark.asyncio
    async def test_missing_key(self, document_request):
        provider = OpenAIProvider("yachtie", api_key=None)

        with pytest.raises(APIKeyMissingError):
            await provider.invoke({})

        # Through the gateway the primary degrades instead of raising
        result = await ProviderGateway(primary=provider).invoke_primary(document_request)
        assert result.success is False
        assert "APIKeyMissingError" in result.error
