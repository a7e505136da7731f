# backend/appwrite_auth.py
import logging

import requests

import config

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """The caller's JWT is missing, invalid or expired."""


class IdentityProviderUnavailable(Exception):
    """Appwrite could not be reached or answered with a server error."""


def extract_bearer_token(authorization):
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_jwt(jwt, endpoint=None, project_id=None, timeout=None):
    """
    Resolve an Appwrite JWT to the account it belongs to.

    Returns a dict with the stable Appwrite id and the profile fields
    mirrored into the local ``users`` table.
    """
    if not jwt:
        raise AuthenticationError("No authentication token provided")

    endpoint = (endpoint or config.APPWRITE_ENDPOINT).rstrip("/")
    headers = {
        "X-Appwrite-Project": project_id if project_id is not None else config.APPWRITE_PROJECT_ID,
        "X-Appwrite-JWT": jwt,
        "Content-Type": "application/json",
    }

    try:
        response = requests.get(
            f"{endpoint}/account",
            headers=headers,
            timeout=timeout or config.APPWRITE_TIMEOUT_SECONDS,
        )
    except requests.exceptions.RequestException as e:
        logger.error("Appwrite request failed: %s", e)
        raise IdentityProviderUnavailable("Identity provider unreachable") from e

    if response.status_code in (401, 403):
        raise AuthenticationError("Invalid or expired authentication token")

    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        logger.error("Appwrite account lookup failed: %s", e, extra={"response": response.text})
        raise IdentityProviderUnavailable("Identity provider error") from e

    account = response.json()
    return {
        "appwrite_id": account["$id"],
        "email": account.get("email", ""),
        "username": (account.get("prefs") or {}).get("username"),
        "full_name": account.get("name") or None,
        "avatar_url": (account.get("prefs") or {}).get("avatar_url"),
        "verified": bool(account.get("emailVerification", False)),
    }
