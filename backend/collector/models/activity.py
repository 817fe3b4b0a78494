from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, Text

from .base import BaseModel, utcnow


class Command(BaseModel):
    __tablename__ = "commands"
    
    # Soft reference, no foreign key: telemetry for unseen sessions is accepted
    session_id = Column(String(255), index=True)
    tool_name = Column(String(255), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    duration_ms = Column(Integer)
    success = Column(Boolean, nullable=False)
    error = Column(Text)


class LLMRequest(BaseModel):
    __tablename__ = "llm_requests"
    
    session_id = Column(String(255), index=True)
    model = Column(String(255), nullable=False)
    provider = Column(String(100))
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    cost_usd = Column(Float, nullable=False, default=0.0)  # fixed at insert time
    thinking_time_ms = Column(Integer)
