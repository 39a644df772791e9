"""
Custom exceptions for the consensus decision pipeline.

These exceptions provide actionable error information for debugging and monitoring.
Per-provider failures are absorbed by the gateway and never reach callers;
only pipeline failures propagate out of ConsensusEngine.submit().
"""


class ConsensusError(Exception):
    """Base exception for consensus engine errors."""
    pass


class ProviderInvocationError(ConsensusError):
    """A single inference provider call failed, timed out or returned success=false."""

    def __init__(self, provider_id: str, message: str):
        super().__init__(f"{provider_id}: {message}")
        self.provider_id = provider_id


class LLMResponseError(ConsensusError):
    """LLM returned an invalid or unexpected response."""
    pass


class RuleSourceError(ConsensusError):
    """Rule configuration source is unreachable or malformed."""
    pass


class JobStateError(ConsensusError):
    """Job is unknown or already in a terminal state."""
    pass


class APIKeyMissingError(ConsensusError):
    """Required API key is not configured."""
    pass
