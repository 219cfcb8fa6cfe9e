from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, Text

from src.core.database import Base
from src.models.schemas import CustomerRef, EventSource, InteractionEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeadEvent(Base):
    """Append-only log of customer interaction observations. Rows are never updated or deleted."""

    __tablename__ = "lead_events"

    __table_args__ = (
        Index("ix_lead_events_phone_date_created", "customer_phone", "date", "created_at"),
        Index("ix_lead_events_follower_date", "follower", "date"),
    )

    # Autoincrement id doubles as arrival order for aggregation tie-breaks
    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True, index=True)
    page = Column(String(255), nullable=True)
    follower = Column(String(255), nullable=True)
    status_text = Column(Text, nullable=True)
    reason_code = Column(String(1), nullable=True)  # A-J or null
    note = Column(Text, nullable=True)
    source_message_id = Column(String(100), nullable=True)
    source_model = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    @classmethod
    def from_schema(cls, event: InteractionEvent) -> "LeadEvent":
        return cls(
            date=event.date,
            customer_name=event.customer.name,
            customer_phone=event.customer.phone,
            page=event.page,
            follower=event.follower,
            status_text=event.status_text,
            reason_code=event.reason_code,
            note=event.note,
            source_message_id=event.source.message_id,
            source_model=event.source.model,
            created_at=event.created_at or _utcnow(),
        )

    def to_schema(self) -> InteractionEvent:
        created_at = self.created_at
        # SQLite drops tzinfo; stored values are always UTC
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return InteractionEvent(
            date=self.date,
            customer=CustomerRef(name=self.customer_name, phone=self.customer_phone),
            page=self.page,
            follower=self.follower,
            status_text=self.status_text,
            reason_code=self.reason_code,
            note=self.note,
            source=EventSource(
                message_id=self.source_message_id or "",
                model=self.source_model or "",
            ),
            created_at=created_at,
        )

    def __repr__(self):
        return f"<LeadEvent(id={self.id}, phone={self.customer_phone}, date={self.date})>"
