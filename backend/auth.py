"""Owner authentication — HMAC-signed bearer tokens.

Accounts live elsewhere; whatever logs an owner in hands them a token made by
issue_owner_token. Requests carry it as ``Authorization: Bearer <token>``.
"""

import hashlib
import hmac
import secrets

from fastapi import HTTPException, Request

from config import SECRET_KEY


def _sign(owner_id: str) -> str:
    return hmac.new(SECRET_KEY.encode(), owner_id.encode(), hashlib.sha256).hexdigest()


def issue_owner_token(owner_id: str) -> str:
    if not owner_id or "." in owner_id:
        raise ValueError("Owner id must be non-empty and contain no '.'")
    return f"{owner_id}.{_sign(owner_id)}"


def verify_owner_token(token: str) -> str | None:
    """Return the owner id carried by a valid token, or None."""
    owner_id, _, signature = token.rpartition(".")
    if not owner_id or not signature:
        return None
    if not secrets.compare_digest(signature, _sign(owner_id)):
        return None
    return owner_id


def current_owner(request: Request) -> str:
    """FastAPI dependency — the authenticated owner id."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Authorization header required")
    owner_id = verify_owner_token(token.strip())
    if owner_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return owner_id
