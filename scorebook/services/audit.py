"""
Audit trail of approval and scoring actions
"""
import logging
from sqlalchemy.orm import Session

from scorebook.models.audit import AuditLog, AuditAction

logger = logging.getLogger(__name__)


class AuditService:
    """
    Fire-and-forget audit sink. Callers log after their own transaction has
    committed; a failure here is logged and never raised.
    """

    def __init__(self, session: Session):
        self.session = session

    def log_action(
        self,
        action: AuditAction,
        performed_by: str,
        match_id: str = None,
        previous_state: dict = None,
        new_state: dict = None,
        approval_type=None,
        was_auto_approved: bool = None,
        ball_number: int = None,
        over_number: int = None,
    ) -> None:
        try:
            entry = AuditLog(
                match_id=match_id,
                action=action,
                performed_by=performed_by,
                previous_state=previous_state,
                new_state=new_state,
                approval_type=approval_type,
                was_auto_approved=was_auto_approved,
                ball_number=ball_number,
                over_number=over_number,
            )
            self.session.add(entry)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning(f"Failed to create audit log for {action.value} on match {match_id}: {e}")

    def get_match_audit_logs(self, match_id: str, limit: int = 100) -> list[AuditLog]:
        return (
            self.session.query(AuditLog)
            .filter_by(match_id=match_id)
            .order_by(AuditLog.performed_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )
