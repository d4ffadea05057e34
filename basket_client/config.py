"""basket-client configuration.

The client talks to basket-server over two transports:
- HTTP POST for queries and mutations
- a WebSocket (graphql-transport-ws) for subscriptions

Everything is controlled by environment variables so the same code runs
against a local server or a deployed one.
"""

from __future__ import annotations

import os

# GraphQL endpoints
GRAPHQL_HTTP_URL: str = os.getenv("GRAPHQL_HTTP_URL", "http://localhost:4000/graphql")
GRAPHQL_WS_URL: str = os.getenv("GRAPHQL_WS_URL", "ws://localhost:4000/graphql")

# Seconds before an HTTP request is abandoned.
REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "10"))

# Reconnect backoff: min(RETRY_BASE_DELAY * 2**attempt, RETRY_MAX_DELAY) seconds.
RETRY_BASE_DELAY: float = float(os.getenv("RETRY_BASE_DELAY", "1"))
RETRY_MAX_DELAY: float = float(os.getenv("RETRY_MAX_DELAY", "30"))

# Seconds to wait for `connection_ack` after `connection_init`.
CONNECTION_ACK_TIMEOUT: float = float(os.getenv("CONNECTION_ACK_TIMEOUT", "10"))
