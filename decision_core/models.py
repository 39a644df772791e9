# decision_core/models.py
"""
Consensus Decision Data Models.

Design Decisions:
- Pydantic BaseModel for runtime validation and JSON serialization
- Requests, rules, provider results and responses are frozen: one request
  produces exactly one job, and nothing downstream may mutate its inputs
- Payloads (request data, provider results) stay opaque (Any); only the
  similarity and explanation strategies look inside them
- camelCase aliases accepted on input so records produced by the web
  application and the inference services load without translation

Why These Models:
- RuleCondition: explicit match kinds instead of free-form substring checks
- ProviderResult: one immutable record per provider invocation
- Job: tracker snapshot; response present if and only if completed
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CriticalityLevel(str, Enum):
    """Caller-supplied severity tier"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ConsensusRequest(BaseModel):
    """
    A decision to be adjudicated.

    task/context classify the request for rule routing; data is forwarded
    to providers as its JSON serialization.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task: str
    data: Any = None
    context: str = ""
    criticality_level: CriticalityLevel = Field(..., alias="criticalityLevel")
    requires_human_approval: Optional[bool] = Field(None, alias="requiresHumanApproval")
    timeout_ms: Optional[int] = Field(None, alias="timeoutMs", gt=0)

    @field_validator("criticality_level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return v.lower() if isinstance(v, str) else v

    def effective_timeout_ms(self, default: int) -> int:
        return self.timeout_ms or default


class ConditionKind(str, Enum):
    DEFAULT = "default"
    TASK_EQUALS = "task_equals"
    CONTEXT_EQUALS = "context_equals"
    CONTAINS = "contains"


class RuleCondition(BaseModel):
    """
    Predicate routing a request to a rule.

    Text form (as stored in rule configuration):
    - "default"        matches every request
    - "task:<x>"       request.task == x
    - "context:<x>"    request.context == x
    - anything else    legacy form: the condition text contains the
                       request's task or context
    """
    model_config = ConfigDict(frozen=True)

    kind: ConditionKind
    value: str = ""

    @classmethod
    def parse(cls, text: str) -> "RuleCondition":
        text = (text or "").strip()
        if text == "default":
            return cls(kind=ConditionKind.DEFAULT)
        if text.startswith("task:"):
            return cls(kind=ConditionKind.TASK_EQUALS, value=text[len("task:"):])
        if text.startswith("context:"):
            return cls(kind=ConditionKind.CONTEXT_EQUALS, value=text[len("context:"):])
        return cls(kind=ConditionKind.CONTAINS, value=text)

    def matches(self, request: ConsensusRequest) -> bool:
        if self.kind is ConditionKind.DEFAULT:
            return True
        if self.kind is ConditionKind.TASK_EQUALS:
            return request.task == self.value
        if self.kind is ConditionKind.CONTEXT_EQUALS:
            return request.context == self.value
        # Empty strings are substrings of everything
        return bool(
            (request.task and request.task in self.value)
            or (request.context and request.context in self.value)
        )

    def __str__(self) -> str:
        if self.kind is ConditionKind.DEFAULT:
            return "default"
        if self.kind is ConditionKind.TASK_EQUALS:
            return f"task:{self.value}"
        if self.kind is ConditionKind.CONTEXT_EQUALS:
            return f"context:{self.value}"
        return self.value


class ConsensusRule(BaseModel):
    """
    Policy applied to a request: agreement threshold, which providers to
    consult, and whether approval is always required.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    condition: RuleCondition
    minimum_agreement: float = Field(..., ge=0.0, le=1.0, alias="minimumAgreement")
    required_providers: Tuple[str, ...] = Field(default=(), alias="requiredProviders")
    human_approval_required: bool = Field(False, alias="humanApprovalRequired")
    enabled: bool = True

    @field_validator("condition", mode="before")
    @classmethod
    def parse_condition(cls, v):
        if isinstance(v, str):
            return RuleCondition.parse(v)
        return v

    @field_validator("required_providers", mode="before")
    @classmethod
    def dedupe_providers(cls, v):
        """Ordered set: keep first occurrence of each provider id."""
        if v is None:
            return ()
        # A bare string is one provider id, not a sequence of characters
        if isinstance(v, str):
            return (v,)
        return tuple(dict.fromkeys(v))


class ProviderResult(BaseModel):
    """Result of one provider invocation."""
    model_config = ConfigDict(frozen=True)

    success: bool
    result: Any = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    provider_id: str
    latency_ms: int = Field(0, ge=0)
    error: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))


class ConsensusOutcome(BaseModel):
    """Output of the consensus calculator."""
    model_config = ConfigDict(frozen=True)

    decision: Any = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    agreement: float = Field(..., ge=0.0, le=1.0)


class ResponseMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    processing_time_ms: int
    rule_name: str
    criticality_level: CriticalityLevel
    approval_reasons: List[str] = Field(default_factory=list)


class ConsensusResponse(BaseModel):
    """
    Adjudicated decision returned once per job.

    providers always lists the primary provider first, followed by the
    alternatives that returned a usable result.
    """
    model_config = ConfigDict(frozen=True)

    decision: Any = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    agreement: float = Field(..., ge=0.0, le=1.0)
    providers: List[str]
    primary_result: Any = None
    alternative_results: List[Any] = Field(default_factory=list)
    explanation: str
    requires_approval: bool
    metadata: ResponseMetadata


class Job(BaseModel):
    """
    Snapshot of a consensus job as held by the job tracker.

    Transitions: processing -> completed | failed, exactly once.
    """
    model_config = ConfigDict(frozen=True)

    job_id: str
    request: ConsensusRequest
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: JobStatus = JobStatus.PROCESSING
    response: Optional[ConsensusResponse] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None

    @model_validator(mode="after")
    def response_iff_completed(self):
        if (self.status is JobStatus.COMPLETED) != (self.response is not None):
            raise ValueError("Job response must be set if and only if status is completed")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.PROCESSING
