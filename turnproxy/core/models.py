"""Client model name -> upstream model name resolution."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from .exceptions import ConfigurationError

logger = logging.getLogger("turnproxy")


def normalize_request_model(model_name: str) -> str:
    """Strip whitespace and a leading ``openai/`` provider prefix."""
    name = model_name.strip()
    if name.lower().startswith("openai/"):
        name = name[len("openai/"):]
    return name


@dataclass(frozen=True)
class ModelRoute:
    """One entry of ``model_list``."""

    name: str
    upstream_model: str
    owned_by: str = "turnproxy"


class ModelResolver:
    """Resolve the name the client asked for to the name the runtime expects.

    Lookups are case-insensitive. Unknown names raise ``ConfigurationError``
    unless ``passthrough`` is set, in which case they are forwarded as-is.
    """

    def __init__(self, routes: Iterable[ModelRoute], passthrough: bool = False) -> None:
        self._routes: dict[str, ModelRoute] = {}
        for route in routes:
            self._routes[route.name.lower()] = route
        self.passthrough = passthrough

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ModelResolver":
        routes = []
        for entry in config.get("model_list") or []:
            if not isinstance(entry, Mapping):
                raise ConfigurationError(
                    "model_list entries must be mappings", code="invalid_config"
                )
            name = entry.get("model_name")
            if not isinstance(name, str) or not name.strip():
                raise ConfigurationError(
                    "model_list entry is missing model_name", code="invalid_config"
                )
            params = entry.get("model_params") or {}
            upstream = params.get("model") or name
            routes.append(ModelRoute(name=name.strip(), upstream_model=str(upstream)))
        proxy_settings = config.get("proxy_settings") or {}
        passthrough = bool(proxy_settings.get("passthrough_unknown_models", False))
        return cls(routes, passthrough=passthrough)

    @property
    def routes(self) -> list[ModelRoute]:
        return list(self._routes.values())

    def get(self, model_name: str) -> Optional[ModelRoute]:
        return self._routes.get(normalize_request_model(model_name).lower())

    def resolve(self, model_name: str) -> str:
        route = self.get(model_name)
        if route is not None:
            return route.upstream_model
        if self.passthrough:
            logger.debug("Passing unknown model '%s' through unchanged", model_name)
            return normalize_request_model(model_name)
        raise ConfigurationError(f"Model '{model_name}' is not configured")
