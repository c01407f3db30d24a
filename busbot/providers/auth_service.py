from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import jwt
import requests

from busbot.config import AUTH_PROFILE_TIMEOUT, AUTH_SERVICE_URL

logger = logging.getLogger(__name__)


class AuthServiceClient:
    """Looks up the signed-in user's contact details for authenticated checkout."""

    def __init__(self, base_url: str = AUTH_SERVICE_URL):
        self.base_url = base_url.rstrip("/")

    def get_profile(self, auth_token: str) -> Optional[Dict[str, Any]]:
        try:
            r = requests.get(
                f"{self.base_url}/me",
                headers={"Authorization": f"Bearer {auth_token}"},
                timeout=AUTH_PROFILE_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.warning("auth profile lookup failed: %s", e)
            return None
        if r.status_code >= 400:
            logger.warning("auth profile lookup failed %s: %s", r.status_code, r.text[:200])
            return None
        try:
            body = r.json()
        except ValueError:
            logger.warning("auth profile lookup returned non-JSON: %s", r.text[:200])
            return None
        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, dict):
            return data.get("user") or data
        return body if isinstance(body, dict) else None

    def contact_info(self, auth_token: str) -> Dict[str, Optional[str]]:
        """
        {phone, email} from the token claims, topped up from /me.
        The token was verified at the HTTP edge; here it is only read.
        """
        try:
            claims = jwt.decode(auth_token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            logger.warning("unreadable auth token: %s", e)
            claims = {}

        contact = {"phone": claims.get("phone"), "email": claims.get("email")}
        if contact["phone"] and contact["email"]:
            return contact

        profile = self.get_profile(auth_token) or {}
        return {
            "phone": contact["phone"] or profile.get("phone"),
            "email": contact["email"] or profile.get("email"),
        }
