"""Consensus Decision Engine - primary result reconciled with alternative providers"""

from decision_core.consensus.approval import ApprovalPolicy
from decision_core.consensus.calculator import ConsensusCalculator
from decision_core.consensus.engine import ConsensusEngine
from decision_core.consensus.explanation import (
    ExplanationGenerator,
    ProviderExplanationGenerator,
    TemplateExplanationGenerator
)
from decision_core.consensus.providers import (
    CallableProvider,
    HTTPProvider,
    InferenceProvider,
    OpenAIProvider,
    ProviderGateway
)
from decision_core.consensus.rules import (
    RuleRegistry,
    RuleSource,
    StaticRuleSource,
    YamlRuleSource,
    rule_from_record
)
from decision_core.consensus.similarity import LexicalSimilarity, SimilarityEstimator, TfidfSimilarity

__all__ = [
    'ApprovalPolicy',
    'ConsensusCalculator',
    'ConsensusEngine',
    'ExplanationGenerator',
    'ProviderExplanationGenerator',
    'TemplateExplanationGenerator',
    'CallableProvider',
    'HTTPProvider',
    'InferenceProvider',
    'OpenAIProvider',
    'ProviderGateway',
    'RuleRegistry',
    'RuleSource',
    'StaticRuleSource',
    'YamlRuleSource',
    'rule_from_record',
    'LexicalSimilarity',
    'SimilarityEstimator',
    'TfidfSimilarity'
]

__version__ = '1.0.0'
