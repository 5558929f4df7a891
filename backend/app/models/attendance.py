"""
Modèle SQLAlchemy pour le registre des présences.

Chaque ligne est une écriture immuable : punch-in (avec statut early / on-time /
late / absent) ou punch-out (statut NULL). Le flux QR sans session partage la
même forme via qr_token.
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Uuid

from app.database import Base


class Attendance(Base):
    """Entrée du registre de présence."""
    __tablename__ = "attendances"
    __table_args__ = (
        Index("ix_attendances_user_check_type", "user_id", "location_check_id", "type"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    location_check_id = Column(
        Uuid, ForeignKey("location_checks.id", ondelete="SET NULL"), nullable=True
    )
    qr_token = Column(String(100), nullable=True)  # flux QR alternatif (sans session)

    type = Column(String(20), nullable=False)          # punch-in, punch-out
    timestamp = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=True)         # early, on-time, late, absent (NULL pour punch-out)
    reason = Column(String(255), nullable=True)
