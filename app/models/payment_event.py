"""Payment webhook idempotency marker: one row per processed provider event id."""
from sqlalchemy import Column, DateTime, Integer, String, func

from app.db.base_class import Base


class PaymentEvent(Base):
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    order_id = Column(Integer, nullable=True, index=True)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
