"""Main FastAPI application for the turn translation proxy."""

import socket
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api.routes import chat_completions, list_models, usage_router
from .config_loader import load_config
from .core.models import ModelResolver
from .core.registry import set_state
from .logging import DiagnosticRecorder, flush_pending_diagnostics, setup_logging
from .settings import ProxySettings, build_settings
from .upstream import AgentRuntime, HttpAgentRuntime

# Initialize logging
logger = setup_logging()


@dataclass
class ProxyState:
    """Everything a request handler needs, shared across requests."""

    settings: ProxySettings
    resolver: ModelResolver
    runtime: AgentRuntime
    diagnostics: DiagnosticRecorder


def build_state(
    config: Mapping[str, Any],
    runtime: Optional[AgentRuntime] = None,
) -> ProxyState:
    settings = build_settings(config)
    resolver = ModelResolver.from_config(config)
    if runtime is None:
        runtime = HttpAgentRuntime.from_settings(settings.runtime)
    diagnostics = DiagnosticRecorder(
        enabled=settings.diagnostics.enabled,
        file_path=settings.diagnostics.file,
    )
    return ProxyState(
        settings=settings,
        resolver=resolver,
        runtime=runtime,
        diagnostics=diagnostics,
    )


def _log_bind_address(settings: ProxySettings) -> None:
    logger.info("Configured bind address %s:%s", settings.host, settings.port)
    if settings.host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
        try:
            lan_ip = socket.gethostbyname(hostname)
        except socket.gaierror:
            lan_ip = None
        if lan_ip and not lan_ip.startswith("127."):
            logger.info("Resolved LAN IP:  http://%s:%s", lan_ip, settings.port)


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    runtime: Optional[AgentRuntime] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Parsed configuration; loaded from disk when omitted.
        runtime: Agent runtime to use instead of the configured HTTP one.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()
    state = build_state(config, runtime)
    set_state(state)
    logger.info(f"Proxy initialized with {len(state.resolver.routes)} models")

    app = FastAPI(title="Turn Proxy")
    app.state.proxy = state

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("Turn proxy server starting up...")
        _log_bind_address(state.settings)
        runtime_obj = state.runtime
        if isinstance(runtime_obj, HttpAgentRuntime):
            logger.info(f"Agent runtime: {runtime_obj.turn_url}")
        else:
            logger.info(f"Agent runtime: {type(runtime_obj).__name__}")
        for route in state.resolver.routes:
            logger.info(f"  - {route.name} -> {route.upstream_model}")
        logger.info("Turn proxy server ready to handle requests")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        await state.runtime.aclose()
        await flush_pending_diagnostics()
        logger.info("Turn proxy server stopped")

    # Register routes
    app.post("/v1/chat/completions")(chat_completions)
    app.post("/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    app.get("/models")(list_models)
    app.include_router(usage_router)

    return app


__all__ = ["ProxyState", "build_state", "create_app"]
