from sqlalchemy import Column, String, DateTime, Text

from .base import BaseModel, utcnow


class Process(BaseModel):
    __tablename__ = "processes"
    
    session_id = Column(String(255), index=True)
    pid = Column(String(100), nullable=False, index=True)
    command = Column(Text)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    ended_at = Column(DateTime(timezone=True))
    status = Column(String(50), nullable=False, default="running")  # "running", "completed"
