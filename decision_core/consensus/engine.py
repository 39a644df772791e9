import asyncio
import logging
import time
from typing import List, Optional

from decision_core.audit_trail import AuditLogger
from decision_core.consensus.approval import ApprovalPolicy
from decision_core.consensus.calculator import ConsensusCalculator
from decision_core.consensus.explanation import ExplanationGenerator, ProviderExplanationGenerator
from decision_core.consensus.providers import ProviderGateway
from decision_core.consensus.rules import RuleRegistry
from decision_core.jobs import JobTracker
from decision_core.models import (
    ConsensusRequest,
    ConsensusResponse,
    Job,
    JobStatus,
    ResponseMetadata,
)

logger = logging.getLogger(__name__)


class ConsensusEngine:
    """
    Reconciles a primary inference result with alternative results into one
    adjudicated decision plus confidence, agreement and an approval verdict.

    Pipeline per request:
    1. Register job (processing)
    2. Select consensus rule
    3. Primary provider (awaited first)
    4. Alternative providers from rule.required_providers (concurrent)
    5. Consensus score
    6. Explanation
    7. Approval verdict
    8. Audit record, job completed

    Provider drop-outs only lower confidence/agreement. Anything else that
    escapes the pipeline marks the job failed and is re-raised unchanged.

    Usage:
        engine = ConsensusEngine(gateway=gateway, rules=registry)
        response = await engine.submit(request)
        job = engine.get_status(response.metadata.job_id)
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        rules: Optional[RuleRegistry] = None,
        calculator: Optional[ConsensusCalculator] = None,
        approval: Optional[ApprovalPolicy] = None,
        explainer: Optional[ExplanationGenerator] = None,
        jobs: Optional[JobTracker] = None,
        audit: Optional[AuditLogger] = None
    ):
        self.gateway = gateway
        if rules is None:
            rules = RuleRegistry(
                primary_provider=gateway.primary_id,
                alternative_providers=gateway.alternative_ids
            )
        self.rules = rules
        self.calculator = calculator if calculator is not None else ConsensusCalculator()
        self.approval = approval if approval is not None else ApprovalPolicy()
        self.explainer = explainer if explainer is not None else ProviderExplanationGenerator(gateway)
        # JobTracker defines __len__, so an empty injected tracker is falsy
        self.jobs = jobs if jobs is not None else JobTracker()
        self.audit = audit if audit is not None else AuditLogger()

    async def submit(self, request: ConsensusRequest) -> ConsensusResponse:
        job = self.jobs.register(request)
        start_time = time.monotonic()
        logger.debug(f"Job {job.job_id} started: task={request.task} criticality={request.criticality_level.value}")

        try:
            response = await self._run(job.job_id, request, start_time)
        except asyncio.CancelledError:
            self.jobs.fail(job.job_id, "cancelled")
            raise
        except Exception as e:
            logger.error(f"Consensus processing error in job {job.job_id}: {e}")
            self.jobs.fail(job.job_id, str(e) or type(e).__name__)
            raise

        self.jobs.complete(job.job_id, response)
        return response

    async def _run(self, job_id: str, request: ConsensusRequest, start_time: float) -> ConsensusResponse:
        rule = self.rules.select_rule(request)

        primary = await self.gateway.invoke_primary(request)
        alternatives = await self.gateway.invoke_alternatives(request, rule.required_providers)

        outcome = self.calculator.compute_consensus(primary, alternatives)
        explanation = await self.explainer.explain(request, primary, alternatives, outcome)
        approval_reasons = self.approval.approval_reasons(request, outcome, rule)

        response = ConsensusResponse(
            decision=outcome.decision,
            confidence=outcome.confidence,
            agreement=outcome.agreement,
            providers=[primary.provider_id] + [alt.provider_id for alt in alternatives],
            primary_result=primary.result,
            alternative_results=[alt.result for alt in alternatives],
            explanation=explanation,
            requires_approval=bool(approval_reasons),
            metadata=ResponseMetadata(
                job_id=job_id,
                processing_time_ms=int((time.monotonic() - start_time) * 1000),
                rule_name=rule.name,
                criticality_level=request.criticality_level,
                approval_reasons=approval_reasons
            )
        )

        # Sink writes may block (disk, remote store); keep them off the event loop
        await asyncio.to_thread(self.audit.log_decision, request, response)
        return response

    def get_status(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def list_active_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """All retained jobs in submission order (optionally one status only)."""
        return self.jobs.list_jobs(status)

    async def aclose(self) -> None:
        """Close provider clients and the audit sink."""
        try:
            await self.gateway.aclose()
        finally:
            self.audit.close()
