import json
import logging
from abc import ABC, abstractmethod
from typing import List

from decision_core.consensus.prompts import (
    EXPLANATION_CONTEXT,
    EXPLANATION_MAX_LENGTH,
    FALLBACK_EXPLANATION,
    TEMPLATE_EXPLANATION,
)
from decision_core.consensus.providers import ProviderGateway
from decision_core.exceptions import ProviderInvocationError
from decision_core.models import ConsensusOutcome, ConsensusRequest, ProviderResult

logger = logging.getLogger(__name__)


class ExplanationGenerator(ABC):
    """Human-readable rationale for a consensus outcome."""

    @abstractmethod
    async def explain(
        self,
        request: ConsensusRequest,
        primary: ProviderResult,
        alternatives: List[ProviderResult],
        outcome: ConsensusOutcome
    ) -> str:
        pass


class TemplateExplanationGenerator(ExplanationGenerator):
    """Deterministic one-line summary; no provider call."""

    async def explain(self, request, primary, alternatives, outcome) -> str:
        return TEMPLATE_EXPLANATION.format(
            primary=primary.provider_id,
            task=request.task,
            confidence=outcome.confidence,
            agreement=outcome.agreement,
            provider_count=1 + len(alternatives)
        )


class ProviderExplanationGenerator(ExplanationGenerator):
    """
    Asks the primary provider to summarize the outcome.

    Falls back to a fixed sentence when the call fails or returns nothing
    usable, so a response always carries an explanation.
    """

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    async def explain(
        self,
        request: ConsensusRequest,
        primary: ProviderResult,
        alternatives: List[ProviderResult],
        outcome: ConsensusOutcome
    ) -> str:
        payload = {
            "text": json.dumps({
                "task": request.task,
                "primaryResult": primary.result,
                "alternativeResults": [alt.result for alt in alternatives],
                "decision": outcome.decision,
                "agreement": outcome.agreement,
                "confidence": outcome.confidence,
            }, default=str),
            "task": "summarize",
            "context": EXPLANATION_CONTEXT,
            "options": {
                "maxLength": EXPLANATION_MAX_LENGTH,
                "explainable": True,
            },
        }
        timeout_ms = request.effective_timeout_ms(self.gateway.default_timeout_ms)

        try:
            result = await self.gateway.invoke_provider(self.gateway.primary_id, payload, timeout_ms)
        except ProviderInvocationError as e:
            logger.warning(f"Explanation generation failed, using fallback: {e}")
            return self.fallback()

        if result.success and isinstance(result.result, str) and result.result.strip():
            return result.result.strip()
        return self.fallback()

    def fallback(self) -> str:
        return FALLBACK_EXPLANATION.format(primary=self.gateway.primary_id)
