"""basket-server configuration.

Like the rest of the server, this module only reads environment variables.
Every value has a development default so `uvicorn basket_server.main:app`
works on a laptop without any setup.
"""

from __future__ import annotations

import os
from pathlib import Path

# --- HTTP --------------------------------------------------------------------
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "4000"))

# Origin of the front-end allowed by CORS. "*" allows everything.
FRONTEND_ORIGIN: str = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")

# --- Catalog -----------------------------------------------------------------
# JSON file with the product list loaded once at startup.
CATALOG_PATH: str = os.getenv(
    "CATALOG_PATH", str(Path(__file__).parent / "data" / "products.json")
)

# --- Cart retention ----------------------------------------------------------
# Carts not touched for this many seconds are dropped by the sweeper.
# 0 disables eviction entirely (carts then live as long as the process).
CART_IDLE_TTL_SECONDS: float = float(os.getenv("CART_IDLE_TTL_SECONDS", "86400"))

# How often the sweeper wakes up.
CART_SWEEP_INTERVAL_SECONDS: float = float(os.getenv("CART_SWEEP_INTERVAL_SECONDS", "300"))

# --- Logging -----------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
