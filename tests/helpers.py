from __future__ import annotations

import base64
import json


def _segment(obj) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode()).rstrip(b"=").decode()


def make_token(sub) -> str:
    """Unsigned JWT whose payload carries `sub`."""
    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment({'sub': sub})}.signature"


def bearer(sub) -> str:
    return f"Bearer {make_token(sub)}"
