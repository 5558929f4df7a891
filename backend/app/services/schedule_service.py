"""
Calculs calendaires des checks de localisation.

- Bornes d'un check (start_at / expires_at) à la création ou modification
- Occurrence courante d'un check hebdomadaire (instant de base B)
- Instants de phase : early = B − earlyWindow, on-time = B,
  late + balayage = B + durée + lateWindow
- Règles cron hebdomadaires normalisées (minutes négatives ou > 59 reportées
  sur l'heure et le jour)

Les heures saisies sont des heures "murales" dans settings.TIMEZONE ;
tous les instants retournés sont en UTC.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import settings
from app.exceptions import InvalidSchedule
from app.schemas.location_check import (
    WEEKDAYS, LocationCheckSession, OnceSchedule, ScheduledMode, SessionMode, WeeklySchedule,
)

MINUTES_PER_DAY = 24 * 60

PHASE_EARLY = "early"
PHASE_ON_TIME = "on-time"
PHASE_LATE = "late"
PHASES = (PHASE_EARLY, PHASE_ON_TIME, PHASE_LATE)


@dataclass(frozen=True)
class Occurrence:
    """
    Une occurrence d'un check planifié.

    start / end : fenêtre [B, B + durée] ; closes_at : instant du balayage
    (B + durée + lateWindow). Les enregistrements de l'occurrence sont ceux de
    l'intervalle ]opened_after, closes_at], opened_after étant le balayage de
    l'occurrence précédente (None pour un check "once").
    """
    start: datetime
    end: datetime
    closes_at: datetime
    opened_after: Optional[datetime] = None


@dataclass(frozen=True)
class WeeklyRule:
    """Règle cron hebdomadaire : jours (0 = lundi), heure et minute toujours dans les bornes."""
    days: Tuple[int, ...]
    hour: int
    minute: int

    @property
    def day_of_week(self) -> str:
        return ",".join(WEEKDAYS[d] for d in self.days)


def local_timezone() -> ZoneInfo:
    try:
        return ZoneInfo(settings.TIMEZONE)
    except ZoneInfoNotFoundError:
        raise InvalidSchedule(f"Fuseau horaire inconnu : {settings.TIMEZONE}.")


def _at(day: date, start_time: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, start_time.replace(second=0, microsecond=0), tzinfo=tz).astimezone(timezone.utc)


def validate_mode(mode: SessionMode) -> None:
    """
    Vérifie qu'un mode planifié est résoluble, sinon lève InvalidSchedule.
    Appelée à la création / modification : une planification invalide
    ne doit jamais échouer au moment du déclenchement.
    """
    if not isinstance(mode, ScheduledMode):
        return
    if mode.duration_minutes is None or mode.duration_minutes <= 0:
        raise InvalidSchedule("La durée doit être un nombre de minutes strictement positif.")
    if mode.early_window < 0 or mode.late_window < 0:
        raise InvalidSchedule("Les fenêtres early/late ne peuvent pas être négatives.")
    if isinstance(mode.schedule, WeeklySchedule) and not mode.schedule.days_of_week:
        raise InvalidSchedule("Un check hebdomadaire doit avoir au moins un jour de la semaine.")
    local_timezone()


def once_start(schedule: OnceSchedule) -> datetime:
    return _at(schedule.date, schedule.start_time, local_timezone())


def next_weekly_start(schedule: WeeklySchedule, span_minutes: int, now: datetime) -> datetime:
    """Première occurrence B telle que B + span_minutes n'est pas antérieur à now."""
    tz = local_timezone()
    days = {WEEKDAYS.index(d) for d in schedule.days_of_week}
    span_days = span_minutes // MINUTES_PER_DAY + 1
    first_day = now.astimezone(tz).date() - timedelta(days=span_days)
    for offset in range(span_days + 8):
        day = first_day + timedelta(days=offset)
        if day.weekday() not in days:
            continue
        start = _at(day, schedule.start_time, tz)
        if start + timedelta(minutes=span_minutes) >= now:
            return start
    raise InvalidSchedule("Aucune occurrence hebdomadaire trouvée.")


def previous_weekly_start(schedule: WeeklySchedule, before: datetime) -> datetime:
    """Dernière occurrence B strictement antérieure à `before`."""
    tz = local_timezone()
    days = {WEEKDAYS.index(d) for d in schedule.days_of_week}
    last_day = before.astimezone(tz).date()
    for offset in range(9):
        day = last_day - timedelta(days=offset)
        if day.weekday() not in days:
            continue
        start = _at(day, schedule.start_time, tz)
        if start < before:
            return start
    raise InvalidSchedule("Aucune occurrence hebdomadaire trouvée.")


def initial_bounds(mode: SessionMode, now: datetime) -> Tuple[datetime, Optional[datetime]]:
    """
    (start_at, expires_at) d'un check.
    Full-time : ouvert dès maintenant, sans expiration. Sinon expires_at = start + durée.
    """
    if not isinstance(mode, ScheduledMode):
        return now, None
    validate_mode(mode)
    if isinstance(mode.schedule, OnceSchedule):
        start = once_start(mode.schedule)
    else:
        start = next_weekly_start(mode.schedule, mode.duration_minutes, now)
    return start, start + timedelta(minutes=mode.duration_minutes)


def _occurrence(mode: ScheduledMode, start: datetime, previous_start: Optional[datetime]) -> Occurrence:
    end = start + timedelta(minutes=mode.duration_minutes)
    tail = timedelta(minutes=mode.duration_minutes + mode.late_window)
    return Occurrence(
        start=start,
        end=end,
        closes_at=start + tail,
        opened_after=previous_start + tail if previous_start is not None else None,
    )


def current_occurrence(session: LocationCheckSession, now: datetime) -> Optional[Occurrence]:
    """
    Occurrence applicable à un pointage à l'instant now : la première dont le
    balayage (closes_at) n'est pas encore passé. None pour un check full-time.
    """
    mode = session.mode
    if not isinstance(mode, ScheduledMode):
        return None
    if isinstance(mode.schedule, OnceSchedule):
        return _occurrence(mode, session.start_at, None)
    start = next_weekly_start(mode.schedule, mode.duration_minutes + mode.late_window, now)
    return _occurrence(mode, start, previous_weekly_start(mode.schedule, start))


def occurrence_to_sweep(session: LocationCheckSession, now: datetime) -> Optional[Occurrence]:
    """
    Occurrence dont l'instant late + balayage (B + durée + lateWindow) vient d'être atteint.
    Une minute de tolérance absorbe un déclenchement légèrement en avance.
    """
    mode = session.mode
    if not isinstance(mode, ScheduledMode):
        return None
    if isinstance(mode.schedule, OnceSchedule):
        return _occurrence(mode, session.start_at, None)
    horizon = now - timedelta(minutes=mode.duration_minutes + mode.late_window - 1)
    start = previous_weekly_start(mode.schedule, horizon)
    return _occurrence(mode, start, previous_weekly_start(mode.schedule, start))


def phase_offsets(mode: ScheduledMode) -> Dict[str, int]:
    """Décalage en minutes de chaque phase par rapport à l'instant de base B."""
    return {
        PHASE_EARLY: -mode.early_window,
        PHASE_ON_TIME: 0,
        PHASE_LATE: mode.duration_minutes + mode.late_window,
    }


def phase_instants(start: datetime, mode: ScheduledMode) -> Dict[str, datetime]:
    return {phase: start + timedelta(minutes=offset) for phase, offset in phase_offsets(mode).items()}


def shift_weekly_rule(days: List[int], hour: int, minute: int, offset_minutes: int) -> WeeklyRule:
    """
    Décale une règle hebdomadaire de offset_minutes en normalisant minute, heure et jour.

    Ex. lundi 00:05 décalé de −10 min → dimanche 23:55.
    """
    total = hour * 60 + minute + offset_minutes
    day_shift, minute_of_day = divmod(total, MINUTES_PER_DAY)
    new_hour, new_minute = divmod(minute_of_day, 60)
    shifted = sorted({(d + day_shift) % 7 for d in days})
    return WeeklyRule(days=tuple(shifted), hour=new_hour, minute=new_minute)


def weekly_rules(mode: ScheduledMode) -> Dict[str, WeeklyRule]:
    """Règle cron normalisée pour chaque phase d'un check hebdomadaire."""
    schedule = mode.schedule
    days = [WEEKDAYS.index(d) for d in schedule.days_of_week]
    return {
        phase: shift_weekly_rule(days, schedule.start_time.hour, schedule.start_time.minute, offset)
        for phase, offset in phase_offsets(mode).items()
    }
