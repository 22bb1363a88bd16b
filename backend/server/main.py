"""
Command-line entry point.

Loads .env, builds the config and serves the app with uvicorn.
Configuration problems exit non-zero before anything starts.
"""

from __future__ import annotations

import sys

import uvicorn
from dotenv import load_dotenv

from config import AppConfig, ConfigError
from observability.logger import log_event
from server.app import create_app


def main() -> None:
    load_dotenv()

    try:
        config = AppConfig.load_from_env()
    except ConfigError as exc:
        log_event({
            "event_type": "CONFIG_INVALID",
            "message": str(exc),
        })
        sys.exit(2)

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
