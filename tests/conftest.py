"""
Pytest fixtures and configuration.

Following TDD principles:
- Fixtures provide real-world-like requests and provider replies
- Providers are in-process CallableProviders; no network, no API keys
- Each test builds its own engine/tracker (no shared state between tests)
"""
import asyncio
from typing import Any, Callable, Optional

import pytest
from dotenv import load_dotenv

from decision_core.consensus.providers import CallableProvider, ProviderGateway
from decision_core.models import ConsensusRequest, CriticalityLevel, ProviderResult

load_dotenv()


# =============================================================================
# REQUEST FIXTURES
# =============================================================================

@pytest.fixture
def document_request() -> ConsensusRequest:
    """Medium-criticality document field check."""
    return ConsensusRequest(
        task="extract_field",
        data={"document": "STCW certificate", "field": "expiry_date", "raw": "01 MAR 2027"},
        context="crew_documents",
        criticality_level=CriticalityLevel.MEDIUM
    )


@pytest.fixture
def critical_request() -> ConsensusRequest:
    """Crew candidate flagging - always needs a human."""
    return ConsensusRequest(
        task="flag_candidate",
        data={"candidate_id": "C-1042", "findings": ["certificate mismatch"]},
        context="crew_onboarding",
        criticality_level=CriticalityLevel.CRITICAL
    )


@pytest.fixture
def low_request() -> ConsensusRequest:
    return ConsensusRequest(
        task="classify_note",
        data="Engine room inspection complete, no issues.",
        context="maintenance_log",
        criticality_level=CriticalityLevel.LOW
    )


# =============================================================================
# PROVIDER FIXTURES
# =============================================================================

class CannedProvider(CallableProvider):
    """CallableProvider that records every payload it receives."""

    def __init__(self, provider_id, func):
        super().__init__(provider_id, func)
        self.calls = []

    async def invoke(self, payload):
        self.calls.append(payload)
        return await super().invoke(payload)


@pytest.fixture
def provider_factory() -> Callable[..., CannedProvider]:
    """
    Build an in-process provider with a canned reply.

    Args (of the returned factory):
        provider_id: Provider identifier
        result: Result payload to return
        confidence: Reported confidence (None omits the key)
        success: Reported success flag
        delay: Seconds to sleep before replying
        error: Exception instance to raise instead of replying
        summary: Result returned for task="summarize" payloads
    """
    def _make(
        provider_id: str,
        result: Any = "approved",
        confidence: Optional[float] = 0.9,
        success: bool = True,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        summary: Any = None
    ) -> CannedProvider:
        async def _invoke(payload):
            if delay:
                await asyncio.sleep(delay)
            if error is not None:
                raise error
            if payload.get("task") == "summarize" and summary is not None:
                return {"success": True, "result": summary, "confidence": 0.9, "latencyMs": 5}
            reply = {"success": success, "result": result, "latencyMs": 12}
            if confidence is not None:
                reply["confidence"] = confidence
            return reply

        return CannedProvider(provider_id, _invoke)

    return _make


@pytest.fixture
def gateway_factory(provider_factory) -> Callable[..., ProviderGateway]:
    """Gateway with a primary 'yachtie' and the given alternatives."""
    def _make(primary=None, alternatives=(), **kwargs) -> ProviderGateway:
        primary = primary or provider_factory("yachtie", result="approved", confidence=0.9)
        return ProviderGateway(primary=primary, alternatives=list(alternatives), **kwargs)

    return _make


@pytest.fixture
def result_factory() -> Callable[..., ProviderResult]:
    def _make(provider_id: str, result: Any, confidence: float, success: bool = True) -> ProviderResult:
        return ProviderResult(
            success=success,
            result=result,
            confidence=confidence,
            provider_id=provider_id,
            latency_ms=10
        )

    return _make
