"""
Provider Gateway - uniform access to the primary and alternative inference services.

Wire contract (any transport):
    invoke({text, task, context, options}) -> {success, result, confidence, latencyMs}

Partial-failure policy:
- Primary is always attempted; its failure becomes a success=False result
  with zero confidence, never an exception
- Each alternative runs concurrently under its own timeout; a timeout,
  exception or success=False reply drops that provider from the result list
  without touching the others
- One attempt per provider per job; retries belong to the caller
"""
import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
import openai
from pydantic import ValidationError

from decision_core.config import DEFAULT_THRESHOLDS
from decision_core.consensus.prompts import PROVIDER_SYSTEM_PROMPT
from decision_core.exceptions import APIKeyMissingError, LLMResponseError, ProviderInvocationError
from decision_core.models import ConsensusRequest, ProviderResult

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


class InferenceProvider(ABC):
    """One inference service reachable by the gateway."""

    provider_id: str

    @abstractmethod
    async def invoke(self, payload: Payload) -> Dict[str, Any]:
        """
        Run one inference.

        Returns:
            Reply dict with keys success, result, confidence, latencyMs
            (confidence and latencyMs optional)
        """
        pass

    async def aclose(self) -> None:
        """Release network clients, if any."""
        return None


class CallableProvider(InferenceProvider):
    """In-process provider wrapping an async function payload -> reply."""

    def __init__(self, provider_id: str, func: Callable[[Payload], Awaitable[Dict[str, Any]]]):
        self.provider_id = provider_id
        self.func = func

    async def invoke(self, payload: Payload) -> Dict[str, Any]:
        return await self.func(payload)


class HTTPProvider(InferenceProvider):
    """
    Inference service behind an HTTP endpoint (e.g. a multi-provider edge function).

    POSTs the payload plus preferredProvider/timeout. The reply may use either
    the wire contract keys or the edge function's {response, confidence,
    processingTime} shape.
    """

    def __init__(
        self,
        provider_id: str,
        endpoint: str,
        api_key: Optional[str] = None,
        preferred_provider: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.provider_id = provider_id
        self.endpoint = endpoint
        self.preferred_provider = preferred_provider or provider_id
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(headers=headers)

    async def invoke(self, payload: Payload) -> Dict[str, Any]:
        body = dict(payload)
        body["preferredProvider"] = self.preferred_provider
        timeout_ms = payload.get("options", {}).get("timeoutMs", DEFAULT_THRESHOLDS.DEFAULT_TIMEOUT_MS)
        body["timeout"] = timeout_ms

        response = await self.client.post(self.endpoint, json=body, timeout=timeout_ms / 1000)
        response.raise_for_status()
        data = response.json()

        if "success" in data:
            return data
        if data.get("error"):
            return {"success": False, "error": str(data["error"])}
        return {
            "success": "response" in data,
            "result": data.get("response"),
            "confidence": data.get("confidence"),
            "latencyMs": data.get("processingTime"),
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class OpenAIProvider(InferenceProvider):
    """
    OpenAI chat model as an inference provider.

    Asks for a JSON object {"result": ..., "confidence": 0-1}. Low temperature
    keeps repeated runs comparable.
    """

    def __init__(self, provider_id: str, model: str = "gpt-4o", api_key: Optional[str] = None):
        self.provider_id = provider_id
        self.model = model
        self.client = openai.AsyncOpenAI(api_key=api_key) if api_key else None

    async def invoke(self, payload: Payload) -> Dict[str, Any]:
        if not self.client:
            raise APIKeyMissingError(f"{self.provider_id} requires an OpenAI API key")

        start_time = time.monotonic()
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": PROVIDER_SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(payload, default=str)}
            ],
            temperature=0.2,
            response_format={"type": "json_object"}
        )

        content = response.choices[0].message.content
        try:
            data = json.loads(content)
        except (TypeError, json.JSONDecodeError) as e:
            raise LLMResponseError(f"{self.model} returned invalid JSON: {e}") from e

        return {
            "success": True,
            "result": data.get("result"),
            "confidence": data.get("confidence"),
            "latencyMs": int((time.monotonic() - start_time) * 1000),
        }

    async def aclose(self) -> None:
        if self.client:
            await self.client.close()


class ProviderGateway:
    """
    Invokes the primary provider, then fans out to alternatives.

    Usage:
        gateway = ProviderGateway(primary=OpenAIProvider("yachtie", api_key=key),
                                  alternatives=[OpenAIProvider("openai", model="gpt-4o-mini", api_key=key)])
        primary = await gateway.invoke_primary(request)
        alternatives = await gateway.invoke_alternatives(request, rule.required_providers)
    """

    def __init__(
        self,
        primary: InferenceProvider,
        alternatives: Sequence[InferenceProvider] = (),
        default_timeout_ms: int = DEFAULT_THRESHOLDS.DEFAULT_TIMEOUT_MS,
        default_confidence: float = DEFAULT_THRESHOLDS.DEFAULT_PROVIDER_CONFIDENCE
    ):
        self.primary = primary
        self.providers: Dict[str, InferenceProvider] = {p.provider_id: p for p in alternatives}
        self.providers[primary.provider_id] = primary
        self.default_timeout_ms = default_timeout_ms
        self.default_confidence = default_confidence

    @property
    def primary_id(self) -> str:
        return self.primary.provider_id

    @property
    def alternative_ids(self) -> List[str]:
        """Configured alternative provider ids, in registration order."""
        return [pid for pid in self.providers if pid != self.primary_id]

    def build_payload(self, request: ConsensusRequest, task: str = "analyze") -> Payload:
        return {
            "text": json.dumps(request.data, default=str),
            "task": task,
            "context": request.context,
            "options": {
                "detailed": True,
                "explainable": True,
                "contextAware": True,
                "timeoutMs": request.effective_timeout_ms(self.default_timeout_ms),
            },
        }

    async def invoke_primary(self, request: ConsensusRequest) -> ProviderResult:
        """Query the primary provider. Never raises; failures come back as success=False."""
        payload = self.build_payload(request)
        timeout_ms = request.effective_timeout_ms(self.default_timeout_ms)
        try:
            result = await self.invoke_provider(self.primary_id, payload, timeout_ms)
        except ProviderInvocationError as e:
            logger.warning(f"Primary provider failed: {e}")
            return ProviderResult(
                success=False,
                result=None,
                confidence=0.0,
                provider_id=self.primary_id,
                error=str(e)
            )

        if not result.success:
            logger.warning(f"Primary provider reported failure: {result.error}")
        return result

    async def invoke_alternatives(
        self,
        request: ConsensusRequest,
        provider_ids: Sequence[str]
    ) -> List[ProviderResult]:
        """
        Query alternative providers concurrently.

        The primary's own id and duplicate ids are skipped. Returns only
        successful results, in provider_ids order.
        """
        targets = [pid for pid in dict.fromkeys(provider_ids) if pid != self.primary_id]
        if not targets:
            return []

        payload = self.build_payload(request)
        timeout_ms = request.effective_timeout_ms(self.default_timeout_ms)

        # return_exceptions keeps one failure from cancelling its siblings
        results = await asyncio.gather(
            *(self.invoke_provider(pid, payload, timeout_ms) for pid in targets),
            return_exceptions=True
        )

        successful = []
        for pid, result in zip(targets, results):
            if isinstance(result, ProviderResult) and result.success:
                successful.append(result)
            elif isinstance(result, ProviderResult):
                logger.warning(f"Alternative provider {pid} failed: {result.error}")
            else:
                logger.warning(f"Alternative provider {pid} failed: {result}")
        return successful

    async def invoke_provider(
        self,
        provider_id: str,
        payload: Payload,
        timeout_ms: Optional[int] = None
    ) -> ProviderResult:
        """
        One bounded call to one provider.

        A success=False reply is returned as-is (the primary's result is kept
        even then); callers decide whether to use it.

        Raises:
            ProviderInvocationError: unknown provider, timeout, exception or
                malformed reply
        """
        provider = self.providers.get(provider_id)
        if provider is None:
            raise ProviderInvocationError(provider_id, "provider not configured")

        timeout_ms = timeout_ms or self.default_timeout_ms
        start_time = time.monotonic()
        try:
            reply = await asyncio.wait_for(provider.invoke(payload), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise ProviderInvocationError(provider_id, f"timed out after {timeout_ms}ms") from e
        except Exception as e:
            raise ProviderInvocationError(provider_id, f"{type(e).__name__}: {e}") from e

        if not isinstance(reply, dict):
            raise ProviderInvocationError(provider_id, f"unexpected reply {reply!r}")

        latency_ms = reply.get("latencyMs")
        if latency_ms is None:
            latency_ms = int((time.monotonic() - start_time) * 1000)

        success = bool(reply.get("success"))
        confidence = reply.get("confidence")
        if confidence is None:
            confidence = self.default_confidence if success else 0.0

        try:
            return ProviderResult(
                success=success,
                result=reply.get("result"),
                confidence=confidence,
                provider_id=provider_id,
                latency_ms=max(0, int(latency_ms)),
                error=None if success else str(reply.get("error") or "provider reported failure")
            )
        except (ValidationError, TypeError, ValueError) as e:
            raise ProviderInvocationError(provider_id, f"malformed reply: {e}") from e

    async def aclose(self) -> None:
        for provider in self.providers.values():
            await provider.aclose()
