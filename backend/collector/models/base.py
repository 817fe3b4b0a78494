from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer

from collector.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as ISO-8601; naive values are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class BaseModel(Base):
    __abstract__ = True
    
    # Integer (not BigInteger) so SQLite assigns rowids
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
