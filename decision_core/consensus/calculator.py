from typing import List, Optional

from decision_core.config import DEFAULT_THRESHOLDS, ThresholdConfig
from decision_core.consensus.similarity import LexicalSimilarity, SimilarityEstimator
from decision_core.models import ConsensusOutcome, ProviderResult


class ConsensusCalculator:
    """
    Scores how far alternative providers corroborate the primary result.

    The primary's result is always the decision; alternatives only move the
    confidence in it. Weighted scoring:

        agreement_score = primary.confidence * 2.0
                        + sum(alt.confidence * similarity(primary, alt) * 1.0)
        total_weight    = 2.0 + 1.0 * (successful alternatives)
        confidence      = agreement_score / total_weight
        agreement       = min(1, agreement_score / (total_weight * max(primary.confidence, 0.1)))

    Example (primary 0.9, one identical alternative at 0.8):
        score 2.6, weight 3.0 -> confidence 0.867, agreement 0.963

    A failed primary (or one with no result) contributes zero confidence and
    zero similarity, so alternatives alone can't raise the score.
    """

    def __init__(
        self,
        similarity: Optional[SimilarityEstimator] = None,
        config: ThresholdConfig = DEFAULT_THRESHOLDS
    ):
        self.similarity = similarity or LexicalSimilarity()
        self.config = config

    def compute_consensus(
        self,
        primary: ProviderResult,
        alternatives: List[ProviderResult]
    ) -> ConsensusOutcome:
        successful = [alt for alt in alternatives if alt.success]

        if not primary.success and not successful:
            return ConsensusOutcome(decision=None, confidence=0.0, agreement=0.0)

        primary_available = primary.success and primary.result is not None
        primary_confidence = primary.confidence if primary.success else 0.0

        total_weight = self.config.PRIMARY_WEIGHT
        agreement_score = primary_confidence * self.config.PRIMARY_WEIGHT

        for alt in successful:
            total_weight += self.config.ALTERNATIVE_WEIGHT
            similarity = self.similarity.similarity(primary.result, alt.result) if primary_available else 0.0
            agreement_score += alt.confidence * similarity * self.config.ALTERNATIVE_WEIGHT

        confidence = agreement_score / total_weight
        agreement = agreement_score / (
            total_weight * max(primary_confidence, self.config.PRIMARY_CONFIDENCE_FLOOR)
        )

        return ConsensusOutcome(
            decision=primary.result,
            confidence=_clamp(confidence),
            agreement=_clamp(agreement)
        )


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
