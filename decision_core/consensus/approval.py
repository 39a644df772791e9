from typing import List

from decision_core.config import DEFAULT_THRESHOLDS
from decision_core.models import ConsensusOutcome, ConsensusRequest, ConsensusRule, CriticalityLevel


class ApprovalPolicy:
    """
    Decides whether a human must approve before the decision is acted on.

    Any single trigger forces approval; there is no override:
    - requested:      caller set requires_human_approval
    - rule:           matched rule demands approval
    - critical:       criticality level is critical
    - low_confidence: consensus confidence below the floor (0.7)
    - low_agreement:  agreement below the rule's minimum
    """

    def __init__(self, confidence_floor: float = DEFAULT_THRESHOLDS.APPROVAL_CONFIDENCE_FLOOR):
        self.confidence_floor = confidence_floor

    def approval_reasons(
        self,
        request: ConsensusRequest,
        outcome: ConsensusOutcome,
        rule: ConsensusRule
    ) -> List[str]:
        reasons = []
        if request.requires_human_approval:
            reasons.append("requested")
        if rule.human_approval_required:
            reasons.append("rule")
        if request.criticality_level is CriticalityLevel.CRITICAL:
            reasons.append("critical")
        if outcome.confidence < self.confidence_floor:
            reasons.append("low_confidence")
        if outcome.agreement < rule.minimum_agreement:
            reasons.append("low_agreement")
        return reasons

    def requires_approval(
        self,
        request: ConsensusRequest,
        outcome: ConsensusOutcome,
        rule: ConsensusRule
    ) -> bool:
        return bool(self.approval_reasons(request, outcome, rule))
