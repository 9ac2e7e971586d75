# campus_parking/models/storage_entry.py
"""
Key/value storage table behind the persistence gateway.
One row per storage key (vehicles, sessions, exceptions, settings, stats, backups, last-sync).
Values are JSON documents; each aggregate reads and writes only its own key.
"""

from sqlalchemy import Column, String, DateTime, Text
from campus_parking.database import Base


class StorageEntry(Base):
    __tablename__ = "storage_entries"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<StorageEntry {self.key} bytes={len(self.value or '')}>"
