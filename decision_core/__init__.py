# Consensus Decision Engine Core Library
# Main entry points: from decision_core.api import build_engine, process_consensus

from .config import load_config, DEFAULT_THRESHOLDS, ThresholdConfig

from .models import (
    ConsensusRequest,
    ConsensusRule,
    ConsensusResponse,
    ConsensusOutcome,
    CriticalityLevel,
    Job,
    JobStatus,
    ProviderResult,
    RuleCondition,
)

from .exceptions import (
    ConsensusError,
    ProviderInvocationError,
    RuleSourceError,
    JobStateError,
)

from .api import build_engine, process_consensus

__all__ = [
    # Main entry points
    "build_engine",
    "process_consensus",
    "load_config",
    "DEFAULT_THRESHOLDS",
    "ThresholdConfig",
    # Models
    "ConsensusRequest",
    "ConsensusRule",
    "ConsensusResponse",
    "ConsensusOutcome",
    "CriticalityLevel",
    "Job",
    "JobStatus",
    "ProviderResult",
    "RuleCondition",
    # Errors
    "ConsensusError",
    "ProviderInvocationError",
    "RuleSourceError",
    "JobStateError",
]
