"""Derive a user identity from an `Authorization: Bearer <jwt>` value.

The token is NOT verified. The server only needs a stable key to partition
carts, so it reads the `sub` claim from the JWT payload and trusts it.

The function is total: whatever the input, it returns either an `Identity` or
`ANONYMOUS`. Callers decide whether an anonymous caller is acceptable.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str


@dataclass(frozen=True)
class Anonymous:
    pass


ANONYMOUS = Anonymous()

UserIdentity = Identity | Anonymous


def _decode_segment(segment: str) -> object:
    padded = segment + "=" * (-len(segment) % 4)
    raw = base64.urlsafe_b64decode(padded)
    return json.loads(raw.decode("utf-8"))


def extract_identity(header: str | None) -> UserIdentity:
    """Return the identity encoded in a bearer header, or `ANONYMOUS`.

    Accepted format is exactly `Bearer <token>`: case-sensitive scheme and a
    single space. `<token>` must have three dot-separated segments whose
    middle one is a base64url JSON object with a truthy `sub`.
    """
    if not header:
        return ANONYMOUS

    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        logger.warning("[Identity] Malformed Authorization header ignored")
        return ANONYMOUS

    token = parts[1]
    if not token:
        return ANONYMOUS

    segments = token.split(".")
    if len(segments) != 3:
        logger.warning("[Identity] Token is not a three-part JWT")
        return ANONYMOUS

    # binascii.Error, UnicodeDecodeError and JSONDecodeError are all ValueErrors;
    # deeply nested JSON exhausts the parser with RecursionError.
    try:
        claims = _decode_segment(segments[1])
    except (ValueError, RecursionError) as e:
        logger.warning("[Identity] Could not decode token payload: %s", e)
        return ANONYMOUS

    if not isinstance(claims, dict) or not claims.get("sub"):
        logger.warning('[Identity] Token payload has no "sub" claim')
        return ANONYMOUS

    return Identity(str(claims["sub"]))
