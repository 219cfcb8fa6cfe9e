import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from src.models.audit_log import AuditLog
from src.models.lead_event import LeadEvent
from src.models.schemas import IncomingMessage, InteractionEvent

logger = logging.getLogger(__name__)


class LeadEventRepository:
    """
    Insert and query access to the append-only event and audit tables.

    Exposes no update or delete on purpose: both tables are logs.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save_event(self, event: InteractionEvent) -> InteractionEvent:
        return self.save_events([event])[0]

    def save_events(self, events: List[InteractionEvent]) -> List[InteractionEvent]:
        if not events:
            return []

        db = self.session_factory()
        try:
            rows = [LeadEvent.from_schema(event) for event in events]
            db.add_all(rows)
            db.commit()
            for row in rows:
                db.refresh(row)
            saved = [row.to_schema() for row in rows]
            logger.info(f"💾 Saved {len(saved)} lead event(s)")
            return saved
        except Exception as e:
            logger.error(f"Error saving lead events: {e}")
            db.rollback()
            raise
        finally:
            db.close()

    def find_latest_by_phone(self, phone: str) -> Optional[InteractionEvent]:
        db = self.session_factory()
        try:
            row = (
                db.query(LeadEvent)
                .filter(LeadEvent.customer_phone == phone)
                .order_by(
                    LeadEvent.date.desc(),
                    LeadEvent.created_at.desc(),
                    LeadEvent.id.desc(),
                )
                .first()
            )
            return row.to_schema() if row else None
        finally:
            db.close()

    def list_events(
        self,
        follower: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[InteractionEvent]:
        """Events in arrival order, optionally narrowed by follower and inclusive date range."""
        db = self.session_factory()
        try:
            query = db.query(LeadEvent)
            if follower:
                query = query.filter(LeadEvent.follower == follower)
            if start_date:
                query = query.filter(LeadEvent.date >= start_date)
            if end_date:
                query = query.filter(LeadEvent.date <= end_date)
            return [row.to_schema() for row in query.order_by(LeadEvent.id.asc()).all()]
        finally:
            db.close()

    def log_audit(
        self,
        action: str,
        message: Optional[IncomingMessage] = None,
        parsed_result: Optional[Any] = None,
        error: Optional[str] = None,
    ) -> None:
        """Audit failures are logged and swallowed so they never break message handling."""
        db = self.session_factory()
        try:
            entry = AuditLog(
                action=action,
                message_id=message.message_id if message else None,
                chat_id=message.chat_id if message else None,
                user_id=message.user_id if message else None,
                username=message.username if message else None,
                original_message=message.text if message else None,
                parsed_result=parsed_result,
                error=error,
            )
            db.add(entry)
            db.commit()
        except Exception as e:
            logger.error(f"Error writing audit log ({action}): {e}")
            db.rollback()
        finally:
            db.close()

    def get_audit_logs(self, message_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        db = self.session_factory()
        try:
            query = db.query(AuditLog)
            if message_id:
                query = query.filter(AuditLog.message_id == message_id)
            rows = query.order_by(AuditLog.id.asc()).limit(limit).all()
            return [
                {
                    "timestamp": row.timestamp,
                    "action": row.action,
                    "message_id": row.message_id,
                    "chat_id": row.chat_id,
                    "user_id": row.user_id,
                    "original_message": row.original_message,
                    "parsed_result": row.parsed_result,
                    "error": row.error,
                }
                for row in rows
            ]
        finally:
            db.close()
