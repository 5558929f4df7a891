"""
Interfaces de stockage consommées par le moteur.

Le moteur ne connaît que ces contrats ; l'implémentation SQLAlchemy est dans
app.repositories.sql, les tests utilisent des implémentations en mémoire.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Protocol, Set

from app.schemas.attendance import AttendanceRecord, PunchType
from app.schemas.location_check import LocationCheckSession


class SessionStore(Protocol):
    def add(self, session: LocationCheckSession) -> None:
        raise NotImplementedError

    def save(self, session: LocationCheckSession) -> None:
        """Remplace entièrement un check existant."""
        raise NotImplementedError

    def get(self, session_id: uuid.UUID) -> Optional[LocationCheckSession]:
        raise NotImplementedError

    def delete(self, session_id: uuid.UUID) -> bool:
        raise NotImplementedError

    def list_all(self, category: Optional[str] = None) -> List[LocationCheckSession]:
        """Tous les checks (filtrés par catégorie si fournie), du plus ancien au plus récent."""
        raise NotImplementedError


class AttendanceStore(Protocol):
    def add(self, record: AttendanceRecord) -> AttendanceRecord:
        raise NotImplementedError

    def insert_punch_in_if_absent(
        self,
        record: AttendanceRecord,
        since: Optional[datetime],
        until: datetime,
    ) -> bool:
        """
        Insère le punch-in seulement si aucun punch-in n'existe déjà pour
        (user_id, session_id) avec since < timestamp <= until (since None = sans borne basse).
        Retourne True si l'enregistrement a été inséré.
        """
        raise NotImplementedError

    def find(
        self,
        *,
        user_id: Optional[uuid.UUID] = None,
        session_id: Optional[uuid.UUID] = None,
        type: Optional[PunchType] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[AttendanceRecord]:
        """Enregistrements filtrés, triés par timestamp croissant (since exclu, until inclus)."""
        raise NotImplementedError

    def delete_in_window(self, session_id: uuid.UUID, start: datetime, end: datetime) -> int:
        """Supprime les enregistrements d'un check avec start <= timestamp <= end."""
        raise NotImplementedError


class EnrollmentProvider(Protocol):
    def eligible_user_ids(self, category: Optional[str]) -> Set[uuid.UUID]:
        """Utilisateurs pouvant pointer pour un check de cette portée (None = global)."""
        raise NotImplementedError
