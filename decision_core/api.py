"""
Unified API for the Consensus Decision Engine.

Design Philosophy:
- One engine per process, built once from configuration and passed to
  callers (no module-level singletons)
- build_engine() wires providers, rules, audit store and job retention
  from config.yaml
- process_consensus() is the synchronous entry point for scripts and
  non-async callers; async services should await engine.submit() directly

Usage:
    from decision_core.api import build_engine, process_consensus

    response = process_consensus({
        "task": "extract_field",
        "data": {"field": "expiry_date", "value": "2027-03-01"},
        "context": "crew_documents",
        "criticalityLevel": "high",
    })
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Union

from decision_core.audit_trail import AuditLogger, SQLiteAuditSink
from decision_core.config import DEFAULT_THRESHOLDS, get_api_keys, load_config, provider_ids
from decision_core.consensus.calculator import ConsensusCalculator
from decision_core.consensus.engine import ConsensusEngine
from decision_core.consensus.providers import HTTPProvider, InferenceProvider, OpenAIProvider, ProviderGateway
from decision_core.consensus.rules import RuleRegistry, YamlRuleSource
from decision_core.consensus.similarity import LexicalSimilarity, TfidfSimilarity
from decision_core.jobs import JobTracker
from decision_core.models import ConsensusRequest, ConsensusResponse

logger = logging.getLogger(__name__)

SIMILARITY_ESTIMATORS = {
    "lexical": LexicalSimilarity,
    "tfidf": TfidfSimilarity,
}


def build_provider(entry: Dict[str, Any], api_keys: Dict[str, str]) -> Optional[InferenceProvider]:
    """
    Instantiate one provider from its config entry.

    Returns:
        Provider, or None when the entry lacks what it needs to run
        (requests routed to it are then dropped like any failed provider)

    Raises:
        ValueError: unknown provider type
    """
    provider_id = entry["id"]
    kind = entry.get("type", "openai")

    if kind == "openai":
        return OpenAIProvider(
            provider_id,
            model=entry.get("model", "gpt-4o"),
            api_key=entry.get("api_key") or api_keys.get("openai") or None
        )
    if kind == "http":
        endpoint = entry.get("endpoint")
        if not endpoint:
            logger.warning(f"Provider {provider_id} has no endpoint configured - skipping")
            return None
        return HTTPProvider(
            provider_id,
            endpoint=endpoint,
            api_key=entry.get("api_key") or api_keys.get("inference_gateway") or None,
            preferred_provider=entry.get("preferred_provider")
        )
    raise ValueError(f"Unknown provider type '{kind}' for provider {provider_id}")


def build_engine(config: Optional[Dict[str, Any]] = None) -> ConsensusEngine:
    """
    Build a ConsensusEngine from configuration.

    Args:
        config: Parsed configuration (defaults to load_config())

    Returns:
        Engine with providers, rule registry, job tracker and audit logger wired
    """
    config = config or load_config()
    api_keys = get_api_keys()
    providers_config = config.get("providers", {})

    primary = build_provider(providers_config["primary"], api_keys)
    if primary is None:
        raise ValueError("Primary provider is not runnable - check providers.primary in config")

    alternatives = []
    for entry in providers_config.get("alternatives", []):
        provider = build_provider(entry, api_keys)
        if provider is not None:
            alternatives.append(provider)

    gateway = ProviderGateway(
        primary=primary,
        alternatives=alternatives,
        default_timeout_ms=config.get("timeout_ms", DEFAULT_THRESHOLDS.DEFAULT_TIMEOUT_MS)
    )

    # Default rules name every declared alternative, runnable or not
    primary_id, alternative_ids = provider_ids(config)
    rules_path = (config.get("rules") or {}).get("path")
    rules = RuleRegistry(
        source=YamlRuleSource(rules_path, primary_provider=primary_id) if rules_path else None,
        primary_provider=primary_id,
        alternative_providers=alternative_ids
    )

    db_path = (config.get("audit") or {}).get("db_path")
    audit = AuditLogger(SQLiteAuditSink(db_path) if db_path else None)

    similarity_name = config.get("similarity", "lexical")
    if similarity_name not in SIMILARITY_ESTIMATORS:
        raise ValueError(f"Unknown similarity estimator '{similarity_name}'")

    return ConsensusEngine(
        gateway=gateway,
        rules=rules,
        calculator=ConsensusCalculator(similarity=SIMILARITY_ESTIMATORS[similarity_name]()),
        jobs=JobTracker(max_jobs=(config.get("jobs") or {}).get("max_tracked", DEFAULT_THRESHOLDS.MAX_TRACKED_JOBS)),
        audit=audit
    )


def process_consensus(
    request: Union[ConsensusRequest, Dict[str, Any]],
    engine: Optional[ConsensusEngine] = None,
    close_engine: Optional[bool] = None
) -> ConsensusResponse:
    """
    Synchronous entry point: run one request to completion.

    Args:
        request: ConsensusRequest or its dict form (camelCase keys accepted)
        engine: Engine to use (default: built from config.yaml)
        close_engine: Close the engine's clients and audit sink before the
            event loop ends (default: only when the engine was built here)

    Reusing an engine across calls is only safe if its providers don't hold
    event-loop-bound clients; long-running services should keep one loop
    and await engine.submit().

    Raises:
        Whatever escaped the pipeline (the job is recorded as failed)
    """
    if not isinstance(request, ConsensusRequest):
        request = ConsensusRequest.model_validate(request)

    if close_engine is None:
        close_engine = engine is None
    if engine is None:
        engine = build_engine()

    async def _run() -> ConsensusResponse:
        try:
            return await engine.submit(request)
        finally:
            if close_engine:
                await engine.aclose()

    return asyncio.run(_run())
