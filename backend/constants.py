"""
PROTOCOL CONSTANTS
------------------
Single source of truth for the relay's wire-level constants.

Rules:
- If changing a value changes what a client or the upstream API observes,
  it belongs here.
- No magic strings elsewhere in the codebase.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Gateway
# =============================================================================

REALTIME_WS_PATH: Final[str] = "/realtime"
LIVENESS_BODY: Final[str] = "OK"

DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_PORT: Final[int] = 3000

# =============================================================================
# Agent defaults
# =============================================================================

DEFAULT_REALTIME_MODEL: Final[str] = "gpt-realtime"
DEFAULT_AGENT_NAME: Final[str] = "Assistant"
DEFAULT_AGENT_INSTRUCTIONS: Final[str] = "You are a helpful assistant."

# =============================================================================
# Upstream (OpenAI Realtime over WebSocket)
# =============================================================================

OPENAI_REALTIME_URL: Final[str] = "wss://api.openai.com/v1/realtime"
REALTIME_CONNECT_TIMEOUT_S: Final[float] = 15.0
REALTIME_MAX_MESSAGE_BYTES: Final[int] = 2**24

# Upstream event kinds a subscriber can register for
EVENT_KIND_ALL: Final[str] = "*"
EVENT_KIND_CONNECTION_CHANGE: Final[str] = "connection_change"
EVENT_KIND_ERROR: Final[str] = "error"
EVENT_KIND_AUDIO: Final[str] = "audio"

# Upstream server event types with special handling
UPSTREAM_SESSION_CREATED: Final[str] = "session.created"
UPSTREAM_ERROR: Final[str] = "error"
UPSTREAM_AUDIO_DELTA_TYPES: Final[frozenset[str]] = frozenset({
    "response.output_audio.delta",
    "response.audio.delta",  # beta protocol name
})

# Upstream client event types the adapter itself produces
UPSTREAM_SESSION_UPDATE: Final[str] = "session.update"
UPSTREAM_AUDIO_APPEND: Final[str] = "input_audio_buffer.append"

# =============================================================================
# Server -> client envelope types
# =============================================================================

MSG_REALTIME_CONNECTED: Final[str] = "realtime.connected"
MSG_REALTIME_ERROR: Final[str] = "realtime.error"
MSG_CLIENT_ERROR: Final[str] = "client.error"
MSG_CONNECTION_CHANGE: Final[str] = "connection.change"

TEXT_CONNECTED: Final[str] = "Connected to OpenAI Realtime API"
TEXT_CONNECT_FAILED: Final[str] = "Failed to connect to OpenAI Realtime API"
TEXT_FORWARD_FAILED: Final[str] = "Failed to forward client event to OpenAI"
TEXT_MALFORMED_PAYLOAD: Final[str] = "Unable to parse websocket payload as JSON"
TEXT_INVALID_SHAPE: Final[str] = "Invalid realtime client event payload"
TEXT_NOT_READY: Final[str] = "Realtime session is not ready"
TEXT_UPSTREAM_ERROR: Final[str] = "OpenAI Realtime API reported an error"

# =============================================================================
# Client socket close codes
# =============================================================================

CLOSE_CODE_SERVER_ERROR: Final[int] = 1011
CLOSE_REASON_CONNECT_FAILED: Final[str] = "Failed to connect to OpenAI"
CLOSE_REASON_UPSTREAM_LOST: Final[str] = "Upstream connection lost"
CLOSE_REASON_INTERNAL_ERROR: Final[str] = "Internal relay error"

# Connection statuses reported by the adapter
STATUS_CONNECTING: Final[str] = "connecting"
STATUS_CONNECTED: Final[str] = "connected"
STATUS_DISCONNECTED: Final[str] = "disconnected"
