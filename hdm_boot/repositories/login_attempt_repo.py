"""
Login attempt repository.

Counting queries behind login throttling and the security statistics
endpoint. All timestamps are naive UTC.

record() commits right away: a failed login ends in an error response
whose request transaction is rolled back, and the attempt must survive it.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hdm_boot.database import utcnow
from hdm_boot.models.security import LoginAttempt

logger = structlog.get_logger(__name__)


class LoginAttemptRepository:
    """Repository for security_login_attempts rows."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        email: str,
        ip_address: str,
        success: bool,
        user_agent: Optional[str] = None,
        attempted_at: Optional[datetime] = None,
    ) -> LoginAttempt:
        attempt = LoginAttempt(
            email=email,
            ip_address=ip_address,
            success=success,
            user_agent=(user_agent or "")[:500] or None,
            attempted_at=attempted_at or utcnow(),
        )
        try:
            self.db.add(attempt)
            self.db.commit()
            return attempt
        except SQLAlchemyError as e:
            logger.error("login_attempt_record_failed", error=str(e), email=email)
            raise

    def failed_for_user(self, email: str, ip_address: str, since: datetime) -> Tuple[int, Optional[datetime]]:
        """
        Count failures matching the email or the IP since a point in time.

        Returns:
            (count, time of the latest failure)
        """
        try:
            row = self.db.execute(
                select(func.count(LoginAttempt.id), func.max(LoginAttempt.attempted_at)).where(
                    or_(LoginAttempt.email == email, LoginAttempt.ip_address == ip_address),
                    LoginAttempt.success.is_(False),
                    LoginAttempt.attempted_at > since,
                )
            ).one()
            return row[0] or 0, row[1]
        except SQLAlchemyError as e:
            logger.error("login_attempt_count_failed", error=str(e), email=email)
            raise

    def count(self, success: bool, since: datetime) -> int:
        try:
            return self.db.scalar(
                select(func.count(LoginAttempt.id)).where(
                    LoginAttempt.success.is_(success),
                    LoginAttempt.attempted_at > since,
                )
            ) or 0
        except SQLAlchemyError as e:
            logger.error("login_attempt_count_failed", error=str(e))
            raise

    def top_failed_ips(self, since: datetime, limit: int = 10) -> List[Dict[str, object]]:
        attempts = func.count(LoginAttempt.id).label("attempts")
        try:
            rows = self.db.execute(
                select(LoginAttempt.ip_address, attempts)
                .where(LoginAttempt.success.is_(False), LoginAttempt.attempted_at > since)
                .group_by(LoginAttempt.ip_address)
                .order_by(desc(attempts))
                .limit(limit)
            )
            return [{"ip_address": ip, "attempts": count} for ip, count in rows]
        except SQLAlchemyError as e:
            logger.error("login_attempt_top_ips_failed", error=str(e))
            raise

    def delete_older_than(self, days: int) -> int:
        cutoff = utcnow() - timedelta(days=days)
        try:
            result = self.db.execute(delete(LoginAttempt).where(LoginAttempt.attempted_at < cutoff))
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error("login_attempt_cleanup_failed", error=str(e))
            raise
