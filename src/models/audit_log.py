from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from src.core.database import Base, JSONType


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    action = Column(String(50), nullable=False, index=True)  # received, parsed, saved, error, header_*, reason_selected
    message_id = Column(String(100), nullable=True)
    chat_id = Column(String(100), nullable=True)
    user_id = Column(String(100), nullable=True, index=True)
    username = Column(String(255), nullable=True)
    original_message = Column(Text, nullable=True)
    parsed_result = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)

    def __repr__(self):
        return f"<AuditLog(action={self.action}, message_id={self.message_id})>"
