import os
from dataclasses import dataclass
from typing import Any

import yaml
from rich.console import Console

console = Console()


@dataclass(frozen=True)
class ThresholdConfig:
    """Weights and thresholds for consensus scoring and approval."""

    # Consensus weighting
    PRIMARY_WEIGHT: float = 2.0
    ALTERNATIVE_WEIGHT: float = 1.0
    # Floor on primary confidence when normalizing agreement
    PRIMARY_CONFIDENCE_FLOOR: float = 0.1

    # Below this confidence a human must approve
    APPROVAL_CONFIDENCE_FLOOR: float = 0.7

    # Provider calls
    DEFAULT_TIMEOUT_MS: int = 30000
    DEFAULT_PROVIDER_CONFIDENCE: float = 0.8

    # Job tracker retention
    MAX_TRACKED_JOBS: int = 1000


# Default configuration instance
DEFAULT_THRESHOLDS = ThresholdConfig()


DEFAULT_CONFIG: dict[str, Any] = {
    "providers": {
        "primary": {"id": "yachtie", "type": "openai", "model": "gpt-4o"},
        "alternatives": [
            {"id": "openai", "type": "openai", "model": "gpt-4o-mini"},
            {"id": "gemini", "type": "http", "endpoint": ""},
            {"id": "deepseek", "type": "http", "endpoint": ""},
        ],
    },
    "rules": {"path": None},
    "audit": {"db_path": None},
    "jobs": {"max_tracked": DEFAULT_THRESHOLDS.MAX_TRACKED_JOBS},
    "timeout_ms": DEFAULT_THRESHOLDS.DEFAULT_TIMEOUT_MS,
}


def load_config(config_path: str = "config.yaml") -> dict[str, Any]:
    """
    From config.yaml

    Args:
        config_path: Path to config file (default: config.yaml)

    Returns:
        Configuration dictionary
    """
    try:
        with open(config_path, "r") as f:
            return yaml.safe_load(f) or DEFAULT_CONFIG
    except FileNotFoundError:
        console.print(f"[red]Error: {config_path} not found. Using default config.[/red]")
        return DEFAULT_CONFIG


def provider_ids(config: dict[str, Any]) -> tuple[str, list[str]]:
    """Primary provider id and ordered alternative ids declared in config."""
    providers = config.get("providers", DEFAULT_CONFIG["providers"])
    primary = providers.get("primary", {}).get("id", "primary")
    alternatives = [p["id"] for p in providers.get("alternatives", []) if p.get("id")]
    return primary, alternatives


def get_api_keys() -> dict[str, str]:
    return {
        "openai": os.getenv("OPENAI_API_KEY", ""),
        "inference_gateway": os.getenv("INFERENCE_GATEWAY_API_KEY", ""),
    }
