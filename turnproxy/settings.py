"""Typed views over the loaded YAML configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

logger = logging.getLogger("turnproxy")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 11435
DEFAULT_RUNTIME_URL = "http://127.0.0.1:8765"
DEFAULT_TURN_PATH = "/v1/turns"
DEFAULT_RUNTIME_TIMEOUT = 600.0


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_float(value: Any, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r, using %s", name, value, default)
        return default


def _as_int(value: Any, default: int, name: str) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r, using %s", name, value, default)
        return default


@dataclass(frozen=True)
class StreamSettings:
    heartbeat_interval: float = 15.0
    max_protocol_errors: int = 3
    queue_size: int = 16


@dataclass(frozen=True)
class DiagnosticsSettings:
    enabled: bool = True
    file: Optional[str] = None


@dataclass(frozen=True)
class RuntimeSettings:
    base_url: str = DEFAULT_RUNTIME_URL
    turn_path: str = DEFAULT_TURN_PATH
    api_key: Optional[str] = None
    timeout: float = DEFAULT_RUNTIME_TIMEOUT


@dataclass(frozen=True)
class ProxySettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    expose_reasoning: bool = False
    passthrough_unknown_models: bool = False
    stream: StreamSettings = field(default_factory=StreamSettings)
    diagnostics: DiagnosticsSettings = field(default_factory=DiagnosticsSettings)
    runtime: RuntimeSettings = field(default_factory=RuntimeSettings)


def build_settings(config: Mapping[str, Any]) -> ProxySettings:
    """Build ``ProxySettings`` from a config dict.

    Environment variables TURNPROXY_HOST and TURNPROXY_PORT take priority
    over ``proxy_settings.server``.
    """
    proxy_settings = config.get("proxy_settings") or {}
    server_cfg = proxy_settings.get("server") or {}
    stream_cfg = proxy_settings.get("stream") or {}
    diag_cfg = proxy_settings.get("diagnostics") or {}
    runtime_cfg = config.get("runtime") or {}

    host = os.getenv("TURNPROXY_HOST") or str(server_cfg.get("host", DEFAULT_HOST))
    port = _as_int(
        os.getenv("TURNPROXY_PORT") or server_cfg.get("port"), DEFAULT_PORT, "server.port"
    )

    api_key = runtime_cfg.get("api_key")
    if isinstance(api_key, str) and (not api_key.strip() or api_key.startswith("$")):
        # unresolved placeholder
        api_key = None

    return ProxySettings(
        host=host,
        port=port,
        expose_reasoning=_parse_bool(proxy_settings.get("expose_reasoning", False)),
        passthrough_unknown_models=_parse_bool(
            proxy_settings.get("passthrough_unknown_models", False)
        ),
        stream=StreamSettings(
            heartbeat_interval=max(
                0.0,
                _as_float(stream_cfg.get("heartbeat_interval"), 15.0, "stream.heartbeat_interval"),
            ),
            max_protocol_errors=max(
                1,
                _as_int(stream_cfg.get("max_protocol_errors"), 3, "stream.max_protocol_errors"),
            ),
            queue_size=max(1, _as_int(stream_cfg.get("queue_size"), 16, "stream.queue_size")),
        ),
        diagnostics=DiagnosticsSettings(
            enabled=_parse_bool(diag_cfg.get("enabled", True)),
            file=diag_cfg.get("file") or None,
        ),
        runtime=RuntimeSettings(
            base_url=str(runtime_cfg.get("base_url") or DEFAULT_RUNTIME_URL),
            turn_path=str(runtime_cfg.get("turn_path") or DEFAULT_TURN_PATH),
            api_key=api_key,
            timeout=_as_float(runtime_cfg.get("timeout"), DEFAULT_RUNTIME_TIMEOUT, "runtime.timeout"),
        ),
    )
