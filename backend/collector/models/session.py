from sqlalchemy import Column, String, DateTime

from collector.core.database import Base
from .base import utcnow


class AgentSession(Base):
    __tablename__ = "sessions"
    
    # Caller-supplied and opaque; duplicates are rejected by the primary key
    id = Column(String(255), primary_key=True)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    ended_at = Column(DateTime(timezone=True))
    agent_id = Column(String(255))
    model = Column(String(255))
    status = Column(String(50), nullable=False, default="active")  # "active", "completed"
