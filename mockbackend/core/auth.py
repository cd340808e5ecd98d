"""
Identity service - registration, login and session tokens over the protected store.
"""

import hashlib
import secrets
from typing import Any, Dict, Optional

from .config import PRINCIPAL_COLLECTION, SESSIONS_COLLECTION
from .errors import BadRequest, Conflict, Forbidden, Unauthorized
from .store import SYSTEM_FIELDS, CollectionStore
from ..util.logging import audit_event, logger

CREDENTIAL_FIELDS = ('email', 'password')


def hash_password(password: str) -> str:
    """Hex sha256 digest stored as hashedPassword."""
    return hashlib.sha256(password.encode('utf-8')).hexdigest()


def strip_credentials(user: Dict[str, Any]) -> Dict[str, Any]:
    user.pop('hashedPassword', None)
    return user


class UserService:
    """Users and sessions live in a store that the data service never exposes directly."""

    def __init__(self, store: CollectionStore):
        self.store = store

    def _find_user(self, email: str) -> Optional[Dict[str, Any]]:
        if not self.store.has(PRINCIPAL_COLLECTION):
            return None
        matches = self.store.query(PRINCIPAL_COLLECTION, {'email': email})
        return matches[0] if matches else None

    def _open_session(self, user: Dict[str, Any]) -> Dict[str, Any]:
        token = secrets.token_hex(32)
        self.store.add(SESSIONS_COLLECTION, {'userId': user['_id'], 'accessToken': token})
        result = strip_credentials(dict(user))
        result['accessToken'] = token
        return result

    @staticmethod
    def _require_credentials(body: Dict[str, Any]):
        if not isinstance(body, dict):
            raise BadRequest("Request body must be a JSON object")
        missing = [f for f in CREDENTIAL_FIELDS if not isinstance(body.get(f), str) or not body.get(f)]
        if missing:
            raise BadRequest(f"Missing fields: {', '.join(missing)}")

    def register(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a user and open a session.

        Raises:
            BadRequest: If email or password is missing
            Conflict: If a user with the same email exists
        """
        self._require_credentials(body)
        if self._find_user(body['email']) is not None:
            raise Conflict("A user with the same email already exists")

        profile = {k: v for k, v in body.items() if k != 'password' and k not in SYSTEM_FIELDS}
        profile['hashedPassword'] = hash_password(body['password'])
        user = self.store.add(PRINCIPAL_COLLECTION, profile)

        audit_event("auth.register", {"user_id": user['_id']}, body)
        return self._open_session(user)

    def login(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Open a session for matching credentials."""
        self._require_credentials(body)
        user = self._find_user(body['email'])
        if user is None or user.get('hashedPassword') != hash_password(body['password']):
            raise Forbidden("Login or password don't match")

        logger.log_auth_event("login", body['email'])
        return self._open_session(user)

    def _session(self, token: str) -> Dict[str, Any]:
        sessions = []
        if self.store.has(SESSIONS_COLLECTION):
            sessions = self.store.query(SESSIONS_COLLECTION, {'accessToken': token})
        if not sessions:
            raise Forbidden("Invalid access token")
        return sessions[0]

    def logout(self, token: Optional[str]) -> None:
        """Close the session behind token."""
        if not token:
            raise Unauthorized()
        session = self._session(token)
        self.store.delete(SESSIONS_COLLECTION, session['_id'])
        logger.log_auth_event("logout")

    def resolve_user(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Caller identity for a request token; None when no token is sent.

        Raises:
            Forbidden: If the token does not belong to a live session
        """
        if not token:
            return None
        session = self._session(token)
        if not self.store.has(PRINCIPAL_COLLECTION, session['userId']):
            raise Forbidden("Invalid access token")
        return strip_credentials(self.store.get(PRINCIPAL_COLLECTION, session['userId']))
