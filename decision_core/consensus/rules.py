"""
Rule Registry - routes each request to the consensus policy that governs it.

Design:
- Rules are configuration data loaded from a RuleSource (YAML file, static list)
- First enabled rule whose condition matches wins (load order)
- No match: a default rule is synthesized from the criticality table
- Rule set is an immutable tuple replaced in a single assignment, so jobs in
  flight see either the old or the new set during a refresh

Failure handling:
- Source unreachable at startup: registry runs with no custom rules
- Source failing on refresh: previous rule set is kept
- Individual malformed records are skipped with a warning
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import yaml
from pydantic import ValidationError

from decision_core.exceptions import RuleSourceError
from decision_core.models import ConsensusRequest, ConsensusRule, CriticalityLevel

logger = logging.getLogger(__name__)

# criticality -> (minimum_agreement, number of providers incl. primary, human approval)
DEFAULT_RULE_TABLE: Dict[CriticalityLevel, Tuple[float, int, bool]] = {
    CriticalityLevel.LOW: (0.6, 1, False),
    CriticalityLevel.MEDIUM: (0.7, 2, False),
    CriticalityLevel.HIGH: (0.8, 3, True),
    CriticalityLevel.CRITICAL: (0.9, 4, True),
}

# Defaults applied to workflow-table records that omit success criteria
WORKFLOW_MINIMUM_AGREEMENT = 0.7


def rule_from_record(record: Dict[str, Any], primary_provider: str = "primary") -> ConsensusRule:
    """
    Build a ConsensusRule from a configuration record.

    Two shapes are accepted:
    - native: {id, name, condition, minimum_agreement, required_providers,
      human_approval_required, enabled} (camelCase keys also accepted)
    - workflow table rows: {id, workflow_name, trigger_type,
      success_criteria: {minimumAgreement, humanApproval}, model_chain, is_active}

    Raises:
        ValidationError: record can't be turned into a valid rule
    """
    if "workflow_name" in record or "success_criteria" in record or "model_chain" in record:
        criteria = record.get("success_criteria")
        if not isinstance(criteria, dict):
            criteria = {}

        chain = record.get("model_chain")
        if isinstance(chain, list):
            providers = [p for p in chain if isinstance(p, str)]
        else:
            providers = [primary_provider]

        return ConsensusRule(
            id=str(record.get("id") or record.get("workflow_name", "")),
            name=record.get("workflow_name") or str(record.get("id", "")),
            condition=record.get("trigger_type") or "default",
            minimum_agreement=criteria.get("minimumAgreement") or WORKFLOW_MINIMUM_AGREEMENT,
            required_providers=providers,
            human_approval_required=bool(criteria.get("humanApproval", False)),
            enabled=bool(record.get("is_active", True))
        )

    return ConsensusRule.model_validate(record)


def rules_from_records(
    records: Iterable[Union[Dict[str, Any], ConsensusRule]],
    primary_provider: str = "primary"
) -> List[ConsensusRule]:
    rules = []
    for idx, record in enumerate(records):
        if isinstance(record, ConsensusRule):
            rules.append(record)
            continue
        try:
            rules.append(rule_from_record(record, primary_provider))
        except (ValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping malformed consensus rule #{idx}: {e}")
    return rules


class RuleSource(ABC):
    """Read-only feed of consensus rules"""

    @abstractmethod
    def load(self) -> List[ConsensusRule]:
        """
        Raises:
            RuleSourceError: source unreachable or unreadable
        """
        pass


class StaticRuleSource(RuleSource):
    """In-memory rule records (tests, embedded configuration)."""

    def __init__(self, records: Sequence[Union[Dict[str, Any], ConsensusRule]], primary_provider: str = "primary"):
        self.records = list(records)
        self.primary_provider = primary_provider

    def load(self) -> List[ConsensusRule]:
        return rules_from_records(self.records, self.primary_provider)


class YamlRuleSource(RuleSource):
    """
    Rules file in YAML:

        rules:
          - id: doc-fields
            name: Document field extraction
            condition: "task:extract_field"
            minimum_agreement: 0.75
            required_providers: [yachtie, openai]
            human_approval_required: false
    """

    def __init__(self, path: str, primary_provider: str = "primary"):
        self.path = path
        self.primary_provider = primary_provider

    def load(self) -> List[ConsensusRule]:
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise RuleSourceError(f"Cannot read rules from {self.path}: {e}") from e

        if data is None:
            return []
        records = data.get("rules", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise RuleSourceError(f"Rules in {self.path} must be a list, got {type(records).__name__}")
        return rules_from_records(records, self.primary_provider)


class RuleRegistry:
    """
    Selects the ConsensusRule for a request.

    Usage:
        registry = RuleRegistry(source=YamlRuleSource("rules.yaml"),
                                primary_provider="yachtie",
                                alternative_providers=["openai", "gemini", "deepseek"])
        rule = registry.select_rule(request)
    """

    def __init__(
        self,
        source: Optional[RuleSource] = None,
        rules: Optional[Sequence[ConsensusRule]] = None,
        primary_provider: str = "primary",
        alternative_providers: Sequence[str] = ("alt-a", "alt-b", "alt-c")
    ):
        self.source = source
        self.primary_provider = primary_provider
        self.alternative_providers = tuple(alternative_providers)
        self._reload_lock = threading.Lock()
        self._rules: Tuple[ConsensusRule, ...] = tuple(rules or ())

        if source is not None and rules is None:
            self.load()

    @property
    def rules(self) -> Tuple[ConsensusRule, ...]:
        return self._rules

    def load(self) -> bool:
        """
        (Re)load rules from the source.

        Returns:
            True if the rule set was replaced, False if the source failed
            and the current set was kept
        """
        if self.source is None:
            return False

        # One reload at a time: an older, slower read can't overwrite a newer one.
        # Readers don't lock; they see whichever tuple is current.
        with self._reload_lock:
            try:
                loaded = tuple(self.source.load())
            except Exception as e:
                logger.warning(f"Failed to load consensus rules, keeping {len(self._rules)} current rule(s): {e}")
                return False
            self._rules = loaded

        logger.info(f"Loaded {len(loaded)} consensus rule(s)")
        return True

    refresh = load

    def applicable_rules(self, request: ConsensusRequest) -> List[ConsensusRule]:
        rules = self._rules  # single read; refresh may swap concurrently
        return [rule for rule in rules if rule.enabled and rule.condition.matches(request)]

    def select_rule(self, request: ConsensusRequest) -> ConsensusRule:
        applicable = self.applicable_rules(request)
        if applicable:
            return applicable[0]
        return self.default_rule(request.criticality_level)

    def default_rule(self, criticality_level: Union[CriticalityLevel, str]) -> ConsensusRule:
        try:
            level = CriticalityLevel(criticality_level)
        except ValueError:
            level = CriticalityLevel.MEDIUM

        minimum_agreement, provider_count, approval = DEFAULT_RULE_TABLE[level]
        providers = (self.primary_provider,) + self.alternative_providers[:provider_count - 1]

        return ConsensusRule(
            id="default",
            name=f"Default {level.value} rule",
            condition="default",
            minimum_agreement=minimum_agreement,
            required_providers=providers,
            human_approval_required=approval,
            enabled=True
        )
