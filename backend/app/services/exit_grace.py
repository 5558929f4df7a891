"""
Suivi du délai de grâce à la sortie de zone (ExitGraceTracker).

État éphémère, propre au processus, par couple (utilisateur, check) :
il existe uniquement entre la première observation hors zone et soit la
sortie confirmée, soit le retour dans la zone. Un redémarrage du processus
pardonne les sorties en cours (état non persisté).
"""

import math
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Tuple, Union

Key = Tuple[uuid.UUID, uuid.UUID]


@dataclass(frozen=True)
class ExitConfirmed:
    pass


@dataclass(frozen=True)
class ExitPending:
    minutes_left: int


ExitDecision = Union[ExitConfirmed, ExitPending]


class ExitGraceTracker:

    def __init__(self):
        self._lock = threading.Lock()
        self._exits: Dict[Key, datetime] = {}

    def on_outside_observed(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        now: datetime,
        grace_minutes: int,
    ) -> ExitDecision:
        """
        Enregistre une observation hors zone.

        Première observation → ExitPending(grace_minutes) (ou ExitConfirmed si la
        grâce est nulle). Observations suivantes → ExitConfirmed une fois
        exit_time + grâce atteint, sinon les minutes restantes arrondies au supérieur.
        L'appelant efface l'état après une sortie confirmée (clear).
        """
        key = (user_id, session_id)
        with self._lock:
            exit_time = self._exits.get(key)
            if exit_time is None:
                if grace_minutes <= 0:
                    return ExitConfirmed()
                self._exits[key] = now
                return ExitPending(minutes_left=grace_minutes)

        grace_until = exit_time + timedelta(minutes=grace_minutes)
        if now >= grace_until:
            return ExitConfirmed()
        remaining = (grace_until - now).total_seconds() / 60
        return ExitPending(minutes_left=math.ceil(remaining))

    def on_inside_observed(self, user_id: uuid.UUID, session_id: uuid.UUID) -> None:
        """Retour dans la zone : la sortie en cours est oubliée."""
        self.clear(user_id, session_id)

    def clear(self, user_id: uuid.UUID, session_id: uuid.UUID) -> None:
        with self._lock:
            self._exits.pop((user_id, session_id), None)

    def clear_session(self, session_id: uuid.UUID) -> None:
        """Oublie toutes les sorties en cours d'un check (check supprimé)."""
        with self._lock:
            for key in [k for k in self._exits if k[1] == session_id]:
                del self._exits[key]

    def __contains__(self, key: Key) -> bool:
        with self._lock:
            return key in self._exits
