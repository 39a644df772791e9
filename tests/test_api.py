"""
Tests for engine wiring from configuration and the synchronous entry point.
"""
import pytest
from unittest.mock import MagicMock

from decision_core.api import build_engine, build_provider, process_consensus
from decision_core.audit_trail import AuditLogger, AuditSink, SQLiteAuditSink
from decision_core.config import DEFAULT_CONFIG, load_config, provider_ids
from decision_core.consensus.engine import ConsensusEngine
from decision_core.consensus.providers import HTTPProvider, OpenAIProvider
from decision_core.consensus.similarity import TfidfSimilarity
from decision_core.models import ConsensusResponse, JobStatus


@pytest.fixture(autouse=True)
def no_api_keys(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("INFERENCE_GATEWAY_API_KEY", raising=False)


def make_config(tmp_path, **overrides):
    config = {
        "providers": {
            "primary": {"id": "yachtie", "type": "openai", "model": "gpt-4o"},
            "alternatives": [
                {"id": "openai", "type": "openai", "model": "gpt-4o-mini"},
                {"id": "gemini", "type": "http", "endpoint": "https://inference.example.com/multi-ai-processor"},
                {"id": "deepseek", "type": "http", "endpoint": ""},
            ],
        },
        "rules": {"path": None},
        "audit": {"db_path": None},
        "jobs": {"max_tracked": 10},
        "timeout_ms": 5000,
    }
    config.update(overrides)
    return config


class TestConfig:

    def test_missing_config_file_uses_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "missing.yaml")) == DEFAULT_CONFIG

    def test_yaml_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("providers:\n  primary: {id: yachtie, type: openai}\ntimeout_ms: 1000\n")

        config = load_config(str(path))

        assert config["timeout_ms"] == 1000
        assert provider_ids(config) == ("yachtie", [])

    def test_default_provider_ids(self):
        assert provider_ids(DEFAULT_CONFIG) == ("yachtie", ["openai", "gemini", "deepseek"])


class TestBuildProvider:

    def test_openai_provider_without_key_is_built(self):
        provider = build_provider({"id": "openai", "type": "openai", "model": "gpt-4o-mini"}, {})
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"
        assert provider.client is None

    def test_http_provider(self):
        provider = build_provider(
            {"id": "gemini", "type": "http", "endpoint": "https://inference.example.com/x"},
            {"inference_gateway": "secret"}
        )
        assert isinstance(provider, HTTPProvider)
        assert provider.preferred_provider == "gemini"

    def test_http_provider_without_endpoint_skipped(self):
        assert build_provider({"id": "deepseek", "type": "http", "endpoint": ""}, {}) is None

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown provider type"):
            build_provider({"id": "x", "type": "grpc"}, {})


class TestBuildEngine:

    def test_wiring(self, tmp_path):
        engine = build_engine(make_config(tmp_path))

        assert isinstance(engine, ConsensusEngine)
        assert engine.gateway.primary_id == "yachtie"
        # deepseek has no endpoint, so it's not runnable
        assert engine.gateway.alternative_ids == ["openai", "gemini"]
        assert engine.gateway.default_timeout_ms == 5000
        assert engine.jobs.max_jobs == 10
        assert engine.audit.sink is None

    def test_default_rules_still_name_declared_providers(self, tmp_path, critical_request):
        engine = build_engine(make_config(tmp_path))
        rule = engine.rules.select_rule(critical_request)
        assert rule.required_providers == ("yachtie", "openai", "gemini", "deepseek")

    def test_rules_audit_and_similarity_from_config(self, tmp_path, document_request):
        rules_path = tmp_path / "rules.yaml"
        rules_path.write_text(
            "- id: docs\n"
            "  name: Document fields\n"
            "  condition: 'task:extract_field'\n"
            "  minimumAgreement: 0.8\n"
            "  requiredProviders: [yachtie, gemini]\n"
        )
        config = make_config(
            tmp_path,
            rules={"path": str(rules_path)},
            audit={"db_path": str(tmp_path / "audit.db")},
            similarity="tfidf"
        )

        engine = build_engine(config)

        assert engine.rules.select_rule(document_request).name == "Document fields"
        assert isinstance(engine.audit.sink, SQLiteAuditSink)
        assert isinstance(engine.calculator.similarity, TfidfSimilarity)
        engine.audit.sink.close()

    def test_unknown_similarity(self, tmp_path):
        with pytest.raises(ValueError, match="similarity"):
            build_engine(make_config(tmp_path, similarity="embedding"))

    def test_unrunnable_primary(self, tmp_path):
        config = make_config(tmp_path)
        config["providers"]["primary"] = {"id": "yachtie", "type": "http", "endpoint": ""}
        with pytest.raises(ValueError, match="Primary provider"):
            build_engine(config)


class TestProcessConsensus:

    def test_dict_request_with_camel_case_keys(self, gateway_factory, provider_factory):
        engine = ConsensusEngine(gateway=gateway_factory(
            primary=provider_factory("yachtie", result="valid", confidence=0.9, summary="Agreed."),
            alternatives=[provider_factory("openai", result="valid", confidence=0.8)]
        ))

        response = process_consensus({
            "task": "extract_field",
            "data": {"field": "expiry_date", "value": "2027-03-01"},
            "context": "crew_documents",
            "criticalityLevel": "MEDIUM",
        }, engine=engine)

        assert isinstance(response, ConsensusResponse)
        assert response.decision == "valid"
        assert response.providers == ["yachtie", "openai"]
        assert response.explanation == "Agreed."
        assert engine.get_status(response.metadata.job_id).status is JobStatus.COMPLETED

    def test_injected_engine_left_open_by_default(self, gateway_factory):
        sink = MagicMock(spec=AuditSink)
        engine = ConsensusEngine(gateway=gateway_factory(), audit=AuditLogger(sink))

        process_consensus({"task": "t", "criticalityLevel": "low"}, engine=engine)

        sink.write.assert_called_once()
        sink.close.assert_not_called()

    def test_injected_engine_closed_on_request(self, gateway_factory):
        sink = MagicMock(spec=AuditSink)
        engine = ConsensusEngine(gateway=gateway_factory(), audit=AuditLogger(sink))

        process_consensus({"task": "t", "criticalityLevel": "low"}, engine=engine, close_engine=True)

        sink.close.assert_called_once()

    def test_invalid_request_rejected(self, gateway_factory):
        engine = ConsensusEngine(gateway=gateway_factory())
        with pytest.raises(ValueError):
            process_consensus({"task": "x", "criticalityLevel": "urgent"}, engine=engine)
        assert engine.list_active_jobs() == []
