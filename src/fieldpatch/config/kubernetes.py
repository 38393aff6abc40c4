"""Kubernetes API server configuration values."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from fieldpatch import __version__

from .env import env_flag, env_float, optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_NAMESPACE: Final[str] = "default"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_QPS: Final[float] = 20.0


@dataclass(frozen=True, slots=True)
class KubernetesConfig:
    api_server: str
    default_namespace: str
    resilience: ResilienceConfig


def _read_token() -> str:
    token = optional_env_var("KUBE_TOKEN")
    if token is not None:
        return token
    token_file = optional_env_var("KUBE_TOKEN_FILE")
    if token_file is None:
        raise MissingConfigurationError(("KUBE_TOKEN", "KUBE_TOKEN_FILE"), any_of=True)
    try:
        token = Path(token_file).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigurationError(
            f"Cannot read KUBE_TOKEN_FILE {token_file}: {exc}", variable="KUBE_TOKEN_FILE"
        ) from exc
    if not token:
        raise ConfigurationError(
            f"KUBE_TOKEN_FILE {token_file} is empty", variable="KUBE_TOKEN_FILE"
        )
    return token


def _verify_setting() -> bool | str:
    if env_flag("KUBE_INSECURE_SKIP_TLS_VERIFY"):
        return False
    ca_file = optional_env_var("KUBE_CA_FILE")
    if ca_file is None:
        return True
    path = Path(ca_file).expanduser()
    if not path.is_file():
        raise ConfigurationError(f"KUBE_CA_FILE {ca_file} does not exist", variable="KUBE_CA_FILE")
    return str(path)


def get_kubernetes_config() -> KubernetesConfig:
    values = require_env_vars(("KUBE_API_SERVER",))
    api_server = values["KUBE_API_SERVER"].strip().rstrip("/")
    if not api_server.startswith(("https://", "http://")):
        raise ConfigurationError(
            f"KUBE_API_SERVER must be an http(s) URL, got {api_server!r}",
            variable="KUBE_API_SERVER",
        )
    token = _read_token()
    qps = env_float("KUBE_QPS", DEFAULT_QPS)

    resilience = ResilienceConfig(
        name="kubernetes",
        base_url=api_server,
        timeout_seconds=env_float("KUBE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        retry=RetryPolicy(total=5, backoff_factor=0.1, max_backoff_wait=30.0, backoff_jitter=0.1),
        ratelimit=RateLimit(max_calls=max(1, int(qps)), per_seconds=1.0),
        verify=_verify_setting(),
        default_headers={
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "User-Agent": f"fieldpatch/{__version__}",
        },
    )
    return KubernetesConfig(
        api_server=api_server,
        default_namespace=optional_env_var("KUBE_NAMESPACE") or DEFAULT_NAMESPACE,
        resilience=resilience,
    )
