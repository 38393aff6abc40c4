"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .kubernetes import KubernetesConfig, get_kubernetes_config
from .logging import configure_logging
from .storage import DatabaseConfig, get_database_config, state_dir

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "KubernetesConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "get_database_config",
    "get_kubernetes_config",
    "require_env_vars",
    "state_dir",
]
