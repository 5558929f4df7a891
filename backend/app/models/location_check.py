"""
Modèle SQLAlchemy pour les checks de localisation (sessions de présence géofencées).

Les colonnes reflètent la forme "à plat" stockée en base ; le moteur ne manipule
que la forme typée (app.schemas.location_check.LocationCheckSession) obtenue
via app.repositories.sql.
"""

import uuid
from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Time, Uuid, func,
)

from app.database import Base


class LocationCheck(Base):
    """Fenêtre de présence planifiée, bornée par une zone circulaire."""
    __tablename__ = "location_checks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Zone circulaire
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius = Column(Float, nullable=False, default=100)  # mètres

    attendance_type = Column(String(20), nullable=False, default="normal")  # normal, full-time
    schedule_type = Column(String(20), nullable=True)       # once, weekly (NULL si full-time)
    days_of_week = Column(JSON, nullable=False, default=list)  # ["mon", "wed", ...]
    specific_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)

    duration = Column(Integer, nullable=True)      # minutes
    early_window = Column(Integer, nullable=True)  # minutes
    late_window = Column(Integer, nullable=True)   # minutes
    out_grace = Column(Integer, nullable=False, default=0)  # minutes

    early_msg = Column(String(255), nullable=True)
    on_time_msg = Column(String(255), nullable=True)
    late_msg = Column(String(255), nullable=True)

    start_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL ⇔ full-time

    user_ids = Column(JSON, nullable=False, default=list)  # vide = tous les éligibles
    category = Column(String(100), nullable=True)           # NULL = global
    issued_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)  # protégé contre les admins de catégorie

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
