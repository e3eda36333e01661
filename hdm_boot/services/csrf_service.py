"""
CSRF tokens kept in the user's session.

One token per form action, one-time use, compared in constant time.
"""

import secrets
from typing import Any, Dict, MutableMapping, Optional

import structlog
from markupsafe import Markup, escape

from hdm_boot.exceptions import SecurityException

logger = structlog.get_logger("security")

TOKEN_BYTES = 32
SESSION_KEY = "csrf_tokens"
MAX_TOKENS = 10
FIELD_NAME = "csrf_token"


class CsrfService:
    """Issue and check CSRF tokens stored in a session mapping."""

    def __init__(self, session: MutableMapping[str, Any]):
        self.session = session

    def _tokens(self) -> Dict[str, str]:
        tokens = self.session.get(SESSION_KEY)
        return dict(tokens) if isinstance(tokens, dict) else {}

    def _store(self, tokens: Dict[str, str]) -> None:
        self.session[SESSION_KEY] = tokens

    def generate_token(self, action: str = "default") -> str:
        token = secrets.token_hex(TOKEN_BYTES)
        tokens = self._tokens()
        # Re-insert so the action moves to the newest position
        tokens.pop(action, None)
        tokens[action] = token

        if len(tokens) > MAX_TOKENS:
            tokens = dict(list(tokens.items())[-MAX_TOKENS:])

        self._store(tokens)
        return token

    def validate_token(self, token: str, action: str = "default") -> bool:
        """Check and consume the token of an action."""
        tokens = self._tokens()
        stored = tokens.pop(action, None)
        if stored is None:
            return False

        self._store(tokens)
        return secrets.compare_digest(stored, token or "")

    def get_token(self, action: str = "default") -> Optional[str]:
        return self._tokens().get(action)

    def get_hidden_input(self, action: str = "default") -> Markup:
        token = self.generate_token(action)
        return Markup('<input type="hidden" name="{}" value="{}">').format(FIELD_NAME, escape(token))

    def validate_from_request(self, data: Dict[str, Any], action: str = "default") -> None:
        """
        Validate the csrf_token field of submitted form data.

        Raises:
            SecurityException: missing or invalid token
        """
        token = data.get(FIELD_NAME, "")
        if not isinstance(token, str) or not self.validate_token(token, action):
            logger.warning("csrf_validation_failed", action=action)
            raise SecurityException.invalid_csrf_token()

    def clear_tokens(self) -> None:
        self.session.pop(SESSION_KEY, None)
