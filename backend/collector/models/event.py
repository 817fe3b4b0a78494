from sqlalchemy import Column, String, DateTime, Text

from .base import BaseModel, utcnow


class Event(BaseModel):
    __tablename__ = "events"
    
    session_id = Column(String(255), index=True)
    event_type = Column(String(50), nullable=False, index=True)  # e.g. "thinking"
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    data = Column(Text)  # JSON-encoded payload
