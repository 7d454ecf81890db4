"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Attach process-wide, read-only configuration
- Choose the upstream adapter factory (overridable in tests)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability import logger
from session.relay_session import AdapterFactory, default_adapter_factory

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    adapter_factory: AdapterFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    config defaults to AppConfig.load_from_env(), which fails fast when the
    upstream credential is missing. Nothing on app.state is mutated after
    this returns; relay sessions share no other state.
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(enabled=config.enable_json_logs)

    app = FastAPI(title="Realtime Voice Relay")

    app.state.config = config
    app.state.adapter_factory = adapter_factory or default_adapter_factory

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
