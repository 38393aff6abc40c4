"""Kubernetes adapter."""

from __future__ import annotations

from .client import KubernetesResourceStore, parse_warning_header
from .errors import decode_store_error
from .translator import to_store_object

__all__ = [
    "KubernetesResourceStore",
    "decode_store_error",
    "parse_warning_header",
    "to_store_object",
]
