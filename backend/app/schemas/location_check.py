"""
Schémas Pydantic pour les checks de localisation.

Le mode d'un check est une union étiquetée :
- FullTimeMode : aucune borne temporelle, chaque pointage bascule entrée/sortie
- ScheduledMode : fenêtre planifiée (OnceSchedule ou WeeklySchedule) avec
  durée, fenêtres early/late et messages de rappel

Ainsi une combinaison invalide (ex. full-time avec une durée) n'est pas
représentable, au lieu d'être mise à NULL à l'exécution.

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import uuid
import datetime as dt
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]  # index = datetime.weekday()


class GeoPoint(BaseModel):
    latitude: float
    longitude: float


class GeoRegion(BaseModel):
    """Zone circulaire : centre + rayon en mètres."""
    latitude: float
    longitude: float
    radius: float


class OnceSchedule(BaseModel):
    kind: Literal["once"] = "once"
    date: dt.date
    start_time: dt.time


class WeeklySchedule(BaseModel):
    kind: Literal["weekly"] = "weekly"
    days_of_week: List[str]
    start_time: dt.time

    @field_validator("days_of_week")
    @classmethod
    def normalize_days(cls, v: List[str]) -> List[str]:
        days = []
        for day in v:
            key = day.strip().lower()[:3]
            if key not in WEEKDAYS:
                raise ValueError(f"Jour invalide : {day}. Valeurs acceptées : {WEEKDAYS}")
            if key not in days:
                days.append(key)
        # Ordre lundi → dimanche ; la liste vide est refusée par le registre (InvalidSchedule)
        return sorted(days, key=WEEKDAYS.index)


Schedule = Annotated[Union[OnceSchedule, WeeklySchedule], Field(discriminator="kind")]


class FullTimeMode(BaseModel):
    mode: Literal["full-time"] = "full-time"


class ScheduledMode(BaseModel):
    mode: Literal["normal"] = "normal"
    schedule: Schedule
    duration_minutes: int
    early_window: int = 0
    late_window: int = 0
    early_msg: Optional[str] = None
    on_time_msg: Optional[str] = None
    late_msg: Optional[str] = None


SessionMode = Annotated[Union[FullTimeMode, ScheduledMode], Field(discriminator="mode")]


class LocationCheckCreate(BaseModel):
    """Données de création (ou de remplacement complet) d'un check de localisation."""
    latitude: float
    longitude: float
    radius: Optional[float] = None  # défaut : settings.DEFAULT_RADIUS_METERS
    out_grace: int = 0               # minutes hors zone avant sortie automatique
    user_ids: List[uuid.UUID] = []   # vide = tous les utilisateurs éligibles
    mode: SessionMode


class LocationCheckSession(BaseModel):
    """Forme typée d'un check, telle que manipulée par le moteur."""
    id: uuid.UUID
    region: GeoRegion
    mode: SessionMode
    out_grace: int = 0
    user_ids: List[uuid.UUID] = []
    category: Optional[str] = None
    issued_by: Optional[uuid.UUID] = None
    is_default: bool = False
    start_at: dt.datetime
    expires_at: Optional[dt.datetime] = None
    created_at: dt.datetime

    model_config = ConfigDict(frozen=True)

    @property
    def is_full_time(self) -> bool:
        return isinstance(self.mode, FullTimeMode)


class LocationCheckResponse(BaseModel):
    """Réponse renvoyée après création, modification ou lecture d'un check."""
    id: uuid.UUID
    latitude: float
    longitude: float
    radius: float
    attendance_type: str
    schedule_type: Optional[str]
    days_of_week: List[str]
    specific_date: Optional[dt.date]
    start_time: Optional[dt.time]
    duration: Optional[int]
    early_window: Optional[int]
    late_window: Optional[int]
    early_msg: Optional[str] = None
    on_time_msg: Optional[str] = None
    late_msg: Optional[str] = None
    out_grace: int
    user_ids: List[uuid.UUID]
    category: Optional[str]
    is_default: bool
    start_at: dt.datetime
    expires_at: Optional[dt.datetime]

    @classmethod
    def from_session(cls, session: LocationCheckSession) -> "LocationCheckResponse":
        mode = session.mode
        scheduled = isinstance(mode, ScheduledMode)
        schedule = mode.schedule if scheduled else None
        return cls(
            id=session.id,
            latitude=session.region.latitude,
            longitude=session.region.longitude,
            radius=session.region.radius,
            attendance_type=mode.mode,
            schedule_type=schedule.kind if schedule else None,
            days_of_week=schedule.days_of_week if isinstance(schedule, WeeklySchedule) else [],
            specific_date=schedule.date if isinstance(schedule, OnceSchedule) else None,
            start_time=schedule.start_time if schedule else None,
            duration=mode.duration_minutes if scheduled else None,
            early_window=mode.early_window if scheduled else None,
            late_window=mode.late_window if scheduled else None,
            early_msg=mode.early_msg if scheduled else None,
            on_time_msg=mode.on_time_msg if scheduled else None,
            late_msg=mode.late_msg if scheduled else None,
            out_grace=session.out_grace,
            user_ids=session.user_ids,
            category=session.category,
            is_default=session.is_default,
            start_at=session.start_at,
            expires_at=session.expires_at,
        )
