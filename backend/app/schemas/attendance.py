"""
Schémas Pydantic pour le registre des présences et les pointages géolocalisés.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class PunchType(str, Enum):
    PUNCH_IN = "punch-in"
    PUNCH_OUT = "punch-out"


class AttendanceStatus(str, Enum):
    EARLY = "early"
    ON_TIME = "on-time"
    LATE = "late"
    ABSENT = "absent"


class AttendanceRecord(BaseModel):
    """Entrée immuable du registre (punch-in ou punch-out)."""
    id: uuid.UUID
    user_id: uuid.UUID
    session_id: Optional[uuid.UUID] = None
    qr_token: Optional[str] = None  # flux QR alternatif, même forme d'enregistrement
    type: PunchType
    timestamp: datetime
    status: Optional[AttendanceStatus] = None  # NULL pour punch-out et full-time
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)


class PunchRequest(BaseModel):
    """Pointage envoyé par le client mobile (position courante)."""
    latitude: float
    longitude: float
    reason: Optional[str] = None


class PunchResult(BaseModel):
    """Décision du moteur pour un pointage accepté."""
    session_id: uuid.UUID
    record_id: uuid.UUID
    type: PunchType
    status: Optional[AttendanceStatus] = None
    timestamp: datetime


class AttendanceHistory(BaseModel):
    """Historique d'une journée, du plus récent au plus ancien."""
    date: str
    records: List[AttendanceRecord]
    total: int
