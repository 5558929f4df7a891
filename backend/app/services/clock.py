"""
Horloge injectable : le moteur ne lit jamais l'heure directement.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Horloge réelle, toujours en UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Ramène un instant en UTC conscient du fuseau.
    Les datetimes naïfs (SQLite ne conserve pas le fuseau) sont considérés comme UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
