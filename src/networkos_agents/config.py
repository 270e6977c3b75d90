#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration management for the NetworkOS agent core.

This module loads configuration from environment variables and optional JSON
files, provides sensible defaults, and validates configuration values. A fresh
AppConfig is built per orchestrator; nothing here is process-wide state.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base directories
ROOT_DIR = Path(__file__).parent.parent.parent.absolute()
CONFIG_DIR = ROOT_DIR / "config"

# Default configuration file paths
DEFAULT_SCORING_POLICY_PATH = CONFIG_DIR / "scoring_policy.json"

# Log levels
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

WORKFLOW_DEPTHS = ("quick", "standard", "deep")


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class AppConfig:
    """Application configuration."""

    # Orchestration loop
    max_iterations: int = field(
        default_factory=lambda: _env_int("ORCHESTRATOR_MAX_ITERATIONS", "15")
    )
    budget_ceiling: float = field(
        default_factory=lambda: _env_float("ORCHESTRATOR_BUDGET_CEILING", "1.00")
    )
    max_parallel_invocations: int = field(
        default_factory=lambda: _env_int("ORCHESTRATOR_MAX_PARALLEL_INVOCATIONS", "1")
    )
    reasoning_timeout_secs: float = field(
        default_factory=lambda: _env_float("REASONING_TIMEOUT_SECS", "120")
    )
    capability_timeout_secs: float = field(
        default_factory=lambda: _env_float("CAPABILITY_TIMEOUT_SECS", "90")
    )

    # Reasoning engine
    anthropic_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY")
    )
    reasoning_model: str = field(
        default_factory=lambda: os.getenv("REASONING_MODEL", "claude-opus-4-20250514")
    )
    reasoning_max_tokens: int = field(
        default_factory=lambda: _env_int("REASONING_MAX_TOKENS", "4096")
    )
    # Per 1k tokens
    reasoning_rate_in: float = field(
        default_factory=lambda: _env_float("REASONING_RATE_IN", "0.015")
    )
    reasoning_rate_out: float = field(
        default_factory=lambda: _env_float("REASONING_RATE_OUT", "0.075")
    )
    subagent_rate_in: float = field(
        default_factory=lambda: _env_float("SUBAGENT_RATE_IN", "0.003")
    )
    subagent_rate_out: float = field(
        default_factory=lambda: _env_float("SUBAGENT_RATE_OUT", "0.015")
    )

    # Scoring policy
    scoring_policy_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("SCORING_POLICY_PATH", str(DEFAULT_SCORING_POLICY_PATH))
        )
    )

    # Enrichment providers
    clearbit_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("CLEARBIT_API_KEY")
    )
    apollo_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("APOLLO_API_KEY")
    )
    hunter_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("HUNTER_API_KEY")
    )
    enrichment_max_cost: float = field(
        default_factory=lambda: _env_float("ENRICHMENT_MAX_COST", "1.00")
    )
    enrichment_timeout_secs: float = field(
        default_factory=lambda: _env_float("ENRICHMENT_TIMEOUT_SECS", "30")
    )
    enrichment_max_workers: int = field(
        default_factory=lambda: _env_int("ENRICHMENT_MAX_WORKERS", "3")
    )
    default_target_roles: List[str] = field(
        default_factory=lambda: _env_list(
            "DEFAULT_TARGET_ROLES",
            "CEO,CTO,CIO,COO,CMO,CPO,VP Engineering,VP Product,VP Marketing,"
            "Head of Engineering,Head of Product,Head of AI,"
            "Director of Engineering,Director of Product",
        )
    )

    # Run defaults
    save_results: bool = field(
        default_factory=lambda: _env_bool("SAVE_RESULTS", "true")
    )
    default_depth: str = field(
        default_factory=lambda: os.getenv("DEFAULT_DEPTH", "standard")
    )

    # Logging
    log_level: int = field(
        default_factory=lambda: LOG_LEVELS.get(
            os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO
        )
    )
    log_file_path: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["LOG_FILE_PATH"]) if os.getenv("LOG_FILE_PATH") else None
    )

    # Debug options
    debug_mode: bool = field(
        default_factory=lambda: _env_bool("DEBUG_MODE", "false")
    )

    def validate(self) -> List[str]:
        """
        Validate configuration values.

        Returns:
            List[str]: List of validation errors, empty if valid
        """
        errors = []

        if self.max_iterations <= 0:
            errors.append("ORCHESTRATOR_MAX_ITERATIONS must be positive")

        if self.budget_ceiling <= 0:
            errors.append("ORCHESTRATOR_BUDGET_CEILING must be positive")

        if self.max_parallel_invocations <= 0:
            errors.append("ORCHESTRATOR_MAX_PARALLEL_INVOCATIONS must be positive")

        for name, value in [
            ("REASONING_TIMEOUT_SECS", self.reasoning_timeout_secs),
            ("CAPABILITY_TIMEOUT_SECS", self.capability_timeout_secs),
            ("ENRICHMENT_TIMEOUT_SECS", self.enrichment_timeout_secs),
        ]:
            if value <= 0:
                errors.append(f"{name} must be positive")

        for name, value in [
            ("REASONING_RATE_IN", self.reasoning_rate_in),
            ("REASONING_RATE_OUT", self.reasoning_rate_out),
            ("SUBAGENT_RATE_IN", self.subagent_rate_in),
            ("SUBAGENT_RATE_OUT", self.subagent_rate_out),
            ("ENRICHMENT_MAX_COST", self.enrichment_max_cost),
        ]:
            if value < 0:
                errors.append(f"{name} must not be negative")

        if self.default_depth not in WORKFLOW_DEPTHS:
            errors.append(f"DEFAULT_DEPTH must be one of {', '.join(WORKFLOW_DEPTHS)}")

        if self.log_file_path is not None and not self.log_file_path.parent.exists():
            errors.append(f"Log file path parent does not exist: {self.log_file_path.parent}")

        return errors

    def load_policy_config(self, path: Optional[Path] = None) -> Dict[str, Any]:
        """
        Load a JSON scoring policy file.

        Args:
            path: Path to the policy file, defaults to ``scoring_policy_path``

        Returns:
            Dict: Loaded configuration or empty dict if the file doesn't exist
        """
        path = Path(path) if path is not None else self.scoring_policy_path
        try:
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            else:
                return {}
        except (OSError, ValueError) as e:
            logging.getLogger(__name__).error(f"Error loading configuration from {path}: {str(e)}")
            return {}
