"""
Application configuration.

Responsibilities:
- Read environment variables
- Provide a typed, immutable config object
- Fail fast when the upstream credential is missing

Non-responsibilities:
- No .env loading (the ASGI entry point calls load_dotenv first)
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from constants import (
    DEFAULT_AGENT_INSTRUCTIONS,
    DEFAULT_AGENT_NAME,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_REALTIME_MODEL,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway and every relay session.
    """

    # ------------------------------------------------------------------
    # Upstream credential (required)
    # ------------------------------------------------------------------

    openai_ephemeral_key: str

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Realtime agent
    # ------------------------------------------------------------------

    realtime_model: str = DEFAULT_REALTIME_MODEL
    agent_name: str = DEFAULT_AGENT_NAME
    agent_instructions: str = DEFAULT_AGENT_INSTRUCTIONS

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(environ: Mapping[str, str] | None = None) -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            RuntimeError if OPENAI_EPHEMERAL_KEY is missing or empty.
            ValueError if PORT is not an integer.
        """
        env = os.environ if environ is None else environ

        api_key = env.get("OPENAI_EPHEMERAL_KEY")
        if not api_key:
            raise RuntimeError(
                "OPENAI_EPHEMERAL_KEY is required to start the realtime bridge."
            )

        return AppConfig(
            openai_ephemeral_key=api_key,
            env=env.get("ENV", "dev"),
            log_level=env.get("LOG_LEVEL", "INFO"),

            realtime_model=env.get("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
            agent_name=env.get("OPENAI_AGENT_NAME", DEFAULT_AGENT_NAME),
            agent_instructions=env.get(
                "OPENAI_AGENT_INSTRUCTIONS", DEFAULT_AGENT_INSTRUCTIONS
            ),

            host=env.get("HOST", DEFAULT_HOST),
            port=int(env.get("PORT", str(DEFAULT_PORT))),

            enable_json_logs=env.get("ENABLE_JSON_LOGS", "1") == "1",
        )
