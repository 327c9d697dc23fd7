#!/usr/bin/env python3
"""Run the turn translation proxy with uvicorn.

Usage:
    python proxy.py [--config configs/config_default.yaml] [--env .env_default]
"""

from __future__ import annotations

import argparse
import logging

import uvicorn

from turnproxy.config_loader import load_config
from turnproxy.core.exceptions import ConfigurationError
from turnproxy.main import create_app
from turnproxy.settings import build_settings

logger = logging.getLogger("turnproxy")


def main() -> int:
    parser = argparse.ArgumentParser(description="OpenAI-compatible proxy for agent runtimes")
    parser.add_argument(
        "--config",
        help="Path to the YAML config (default: TURNPROXY_CONFIG or configs/config_default.yaml)",
    )
    parser.add_argument("--env", help="Path to the .env file used for ${VAR} substitution")
    args = parser.parse_args()

    try:
        config = load_config(args.config, env_path=args.env)
    except ConfigurationError as exc:
        logger.error("Failed to load config: %s", exc.message)
        return 1

    settings = build_settings(config)
    app = create_app(config)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
