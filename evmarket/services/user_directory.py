"""Read-only lookups of contact details held by the auth service."""
import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)


def _blank(user_id):
    return {"id": user_id, "full_name": "", "email": "", "phone": ""}


def fetch_user_view(user_id) -> dict:
    """Contact card for order pages. Falls back to blanks when the service is off or down."""
    base_url = (current_app.config.get("USER_SERVICE_URL") or "").rstrip("/")
    if not base_url or user_id is None:
        return _blank(user_id)

    try:
        resp = requests.get(
            f"{base_url}/auth/users/id/{int(user_id)}",
            timeout=current_app.config.get("USER_SERVICE_TIMEOUT", 4),
        )
    except requests.RequestException as exc:
        logger.warning("user service unreachable user_id=%s err=%s", user_id, exc)
        return _blank(user_id)

    if not resp.ok:
        logger.warning("user service returned %s for user_id=%s", resp.status_code, user_id)
        return _blank(user_id)

    try:
        data = resp.json() or {}
    except ValueError:
        logger.warning("user service sent non-JSON body for user_id=%s", user_id)
        return _blank(user_id)

    profile = data.get("profile") or {}
    return {
        "id": user_id,
        "full_name": data.get("full_name") or profile.get("full_name") or "",
        "email": data.get("email") or "",
        "phone": data.get("phone") or "",
    }
