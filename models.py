"""
Database Models
Shared enums and the SQLAlchemy ORM model for persisted state blobs
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime
from enum import Enum as PyEnum

from database import Base


# ==================== ENUMS ====================

class DoseStatus(str, PyEnum):
    """Recorded status of a scheduled dose"""
    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"
    PENDING = "pending"
    SNOOZED = "snoozed"


class RefillStatus(str, PyEnum):
    """Supply level classification for a tracked medicine"""
    CRITICAL = "critical"
    WARNING = "warning"
    OK = "ok"


# ==================== MODELS ====================

class StoredBlob(Base):
    """Opaque, versioned serialized state keyed by name (settings, medicines, logs)"""
    __tablename__ = "stored_blobs"

    key = Column(String(100), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<StoredBlob(key='{self.key}', version={self.version})>"
