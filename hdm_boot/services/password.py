"""Password hashing with passlib (bcrypt)."""

import structlog
from passlib.context import CryptContext

logger = structlog.get_logger(__name__)


class PasswordHasher:
    """bcrypt hashing with a configurable cost.

    Hashes made with fewer rounds than configured report needs_rehash, so
    raising PASSWORD_BCRYPT_ROUNDS upgrades stored hashes as users log in.
    """

    def __init__(self, rounds: int = 12):
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
            bcrypt__min_rounds=rounds,
        )

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns:
            False for a mismatch or an unreadable hash
        """
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.error("password_verification_failed", error=str(e))
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        return self.pwd_context.needs_update(hashed_password)
