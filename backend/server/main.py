"""
Process entry point for the realtime relay.

Loads .env (existing environment variables win), builds the immutable
config once, and serves the app with uvicorn on the configured port.
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig
from constants import REALTIME_WS_PATH
from observability.logger import log_event
from server.app import create_app


def main() -> None:
    load_dotenv()

    config = AppConfig.load_from_env()
    app = create_app(config)

    log_event({
        "event_type": "SERVER_STARTING",
        "env": config.env,
        "host": config.host,
        "port": config.port,
        "ws_path": REALTIME_WS_PATH,
        "model": config.realtime_model,
    })

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
