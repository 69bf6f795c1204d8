"""
Orchestrator Configuration

Settings are read from environment variables (a local ``.env`` file is loaded
first via python-dotenv). Every value has a default so the orchestrator runs
without any configuration beyond the model provider's API key.

Environment Variables:
    ORCHESTRATOR_MODEL: Chat model name for the oracle (default: gpt-4o-mini)
    ORCHESTRATOR_TEMPERATURE: Sampling temperature (default: 0.2)
    ORCHESTRATOR_ORACLE_TIMEOUT: Seconds before an oracle call is abandoned (default: 60)
    ORCHESTRATOR_MANAGER_CAPACITY: Soft cap on agents per manager (default: 5)
    ORCHESTRATOR_DEFAULT_QUALITY: Quality score for registered results (default: 0.8)
    ORCHESTRATOR_MIN_COMPONENTS: Progressive synthesis quorum (default: 2)
    ORCHESTRATOR_MAX_ROUTING_STEPS: Upper bound on supervisor graph iterations (default: 12)
    ORCHESTRATOR_LOG_LEVEL: Logging level name (default: INFO)
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, TypeVar

from dotenv import load_dotenv

# Load environment variables early
load_dotenv()

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _env(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"[Config] Invalid value for {name}: {raw!r}, using default {default!r}")
        return default


@dataclass
class OrchestratorSettings:
    """Runtime settings for the orchestrator."""

    model_name: str = "gpt-4o-mini"
    temperature: float = 0.2
    oracle_timeout: float = 60.0
    manager_capacity: int = 5
    default_quality: float = 0.8
    min_components: int = 2
    max_routing_steps: int = 12
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        """Build settings from ``ORCHESTRATOR_*`` environment variables."""
        defaults = cls()
        return cls(
            model_name=_env("ORCHESTRATOR_MODEL", defaults.model_name, str),
            temperature=_env("ORCHESTRATOR_TEMPERATURE", defaults.temperature, float),
            oracle_timeout=_env("ORCHESTRATOR_ORACLE_TIMEOUT", defaults.oracle_timeout, float),
            manager_capacity=_env("ORCHESTRATOR_MANAGER_CAPACITY", defaults.manager_capacity, int),
            default_quality=_env("ORCHESTRATOR_DEFAULT_QUALITY", defaults.default_quality, float),
            min_components=_env("ORCHESTRATOR_MIN_COMPONENTS", defaults.min_components, int),
            max_routing_steps=_env("ORCHESTRATOR_MAX_ROUTING_STEPS", defaults.max_routing_steps, int),
            log_level=_env("ORCHESTRATOR_LOG_LEVEL", defaults.log_level, str).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log format used by the orchestrator."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
