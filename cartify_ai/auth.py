"""Bearer credential checks for the assistant endpoint.

The token is decoded locally and its claims are trusted as issued: the
signature is NOT verified. Verification against the issuer's signing key is
a known gap; see DESIGN.md before relying on this for anything but gating.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import Unauthorized
from .utils import safe_json_loads

logger = logging.getLogger("cartify.auth")

AUTHENTICATED_ROLE = "authenticated"
BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class CallerIdentity:
    """Identity extracted from the bearer credential claims."""
    user_id: str
    role: str


def decode_base64url(segment: str) -> bytes:
    """Purpose: Decode an unpadded base64url segment.
    Inputs/Outputs: Input is a token segment; output is raw bytes.
    Side Effects / State: None.
    Dependencies: Uses base64.urlsafe_b64decode.
    Failure Modes: Raises binascii.Error or ValueError on invalid input.
    If Removed: Claims cannot be read from the credential.
    Testing Notes: Decode segments of every padding length.
    """
    # Restore the padding stripped by the token issuer.
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def require_authenticated_user(authorization: Optional[str]) -> CallerIdentity:
    """Purpose: Validate the Authorization header and extract the caller identity.
    Inputs/Outputs: Input is the raw header value; output is a CallerIdentity.
    Side Effects / State: None; no network access.
    Dependencies: Uses decode_base64url and safe_json_loads.
    Failure Modes: Raises Unauthorized on a missing header, wrong segment count,
        undecodable payload, role other than "authenticated", or empty subject.
    If Removed: Anonymous callers could reach the search, catalog, and model calls.
    Testing Notes: Build tokens with role "anon" and with missing sub; expect 401.
    """
    # Accept only "Bearer <header>.<payload>.<signature>".
    header = (authorization or "").strip()
    if not header.lower().startswith(BEARER_PREFIX):
        raise Unauthorized("Missing Authorization")

    token = header[len(BEARER_PREFIX):].strip()
    parts = token.split(".")
    if len(parts) != 3 or not parts[1]:
        raise Unauthorized("Invalid token")

    try:
        payload_text = decode_base64url(parts[1]).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise Unauthorized("Invalid token")

    claims = safe_json_loads(payload_text)
    if claims is None:
        raise Unauthorized("Invalid token")

    role = claims.get("role")
    if not isinstance(role, str) or role != AUTHENTICATED_ROLE:
        logger.info("auth rejected role=%s", role if isinstance(role, str) else type(role).__name__)
        raise Unauthorized("Not authenticated")

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise Unauthorized("Invalid token")

    return CallerIdentity(user_id=subject.strip(), role=role)
