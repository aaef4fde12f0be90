import time
from dataclasses import dataclass
from functools import wraps

import jwt
from flask import current_app, g, jsonify, request


@dataclass(frozen=True)
class Actor:
    id: int
    role: str = "member"
    username: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _decode(token: str) -> dict:
    return jwt.decode(
        token,
        current_app.config["JWT_SECRET"],
        algorithms=[current_app.config.get("JWT_ALGO", "HS256")],
        options={"verify_sub": False},
    )


def _actor_from_payload(payload: dict) -> Actor | None:
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    role = str(payload.get("role") or "member").lower()
    return Actor(id=uid, role=role, username=payload.get("username"))


def _resolve():
    """Return (actor, error_code) for the current request."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None, "missing_token"
    token = auth.split(" ", 1)[1].strip()
    try:
        payload = _decode(token)
    except jwt.PyJWTError:
        return None, "invalid_token"
    actor = _actor_from_payload(payload)
    if actor is None:
        return None, "invalid_token"
    return actor, None


def current_actor() -> Actor | None:
    """Optional identity: a bad or missing token simply means anonymous."""
    actor, _ = _resolve()
    return actor


def require_auth(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        actor, error = _resolve()
        if error:
            return jsonify({"error": error, "message": "Authentication required"}), 401
        g.actor = actor
        return func(*args, **kwargs)

    return wrapper


def require_admin(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        actor, error = _resolve()
        if error:
            return jsonify({"error": error, "message": "Authentication required"}), 401
        if not actor.is_admin:
            return jsonify({"error": "not_admin", "message": "Administrator role required"}), 403
        g.actor = actor
        return func(*args, **kwargs)

    return wrapper


def issue_token(user_id: int, role: str = "member", username: str | None = None,
                ttl_seconds: int = 6 * 3600) -> str:
    """Mint a token the way the auth service does. Used by tooling and tests."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "username": username or f"user{user_id}",
        "role": role,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"],
                      algorithm=current_app.config.get("JWT_ALGO", "HS256"))
