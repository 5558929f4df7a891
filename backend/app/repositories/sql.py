"""
Implémentations SQLAlchemy des interfaces de stockage.

Chaque méthode ouvre sa propre session via la fabrique fournie (SessionLocal) :
les stores sont appelés aussi bien depuis les requêtes HTTP que depuis les
jobs du scheduler, sur des threads différents.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Set

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.attendance import Attendance
from app.models.location_check import LocationCheck
from app.models.user import User
from app.schemas.attendance import AttendanceRecord, PunchType
from app.schemas.location_check import (
    FullTimeMode, GeoRegion, LocationCheckSession, OnceSchedule, ScheduledMode, WeeklySchedule,
)
from app.services.clock import ensure_utc

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


# ----------------------------------------------------------------
# Conversions ligne ↔ forme typée
# ----------------------------------------------------------------

def row_to_session(row: LocationCheck) -> LocationCheckSession:
    if row.attendance_type == "full-time":
        mode = FullTimeMode()
    else:
        if row.schedule_type == "weekly":
            schedule = WeeklySchedule(days_of_week=row.days_of_week or [], start_time=row.start_time)
        else:
            schedule = OnceSchedule(date=row.specific_date, start_time=row.start_time)
        mode = ScheduledMode(
            schedule=schedule,
            duration_minutes=row.duration,
            early_window=row.early_window or 0,
            late_window=row.late_window or 0,
            early_msg=row.early_msg,
            on_time_msg=row.on_time_msg,
            late_msg=row.late_msg,
        )
    return LocationCheckSession(
        id=row.id,
        region=GeoRegion(latitude=row.latitude, longitude=row.longitude, radius=row.radius),
        mode=mode,
        out_grace=row.out_grace or 0,
        user_ids=[uuid.UUID(str(u)) for u in (row.user_ids or [])],
        category=row.category,
        issued_by=row.issued_by,
        is_default=bool(row.is_default),
        start_at=ensure_utc(row.start_at),
        expires_at=ensure_utc(row.expires_at),
        created_at=ensure_utc(row.created_at),
    )


def apply_session(row: LocationCheck, session: LocationCheckSession) -> LocationCheck:
    """Recopie la forme typée dans les colonnes à plat (les champs non pertinents passent à NULL)."""
    mode = session.mode
    scheduled = isinstance(mode, ScheduledMode)
    schedule = mode.schedule if scheduled else None

    row.id = session.id
    row.latitude = session.region.latitude
    row.longitude = session.region.longitude
    row.radius = session.region.radius
    row.attendance_type = mode.mode
    row.schedule_type = schedule.kind if schedule else None
    row.days_of_week = list(schedule.days_of_week) if isinstance(schedule, WeeklySchedule) else []
    row.specific_date = schedule.date if isinstance(schedule, OnceSchedule) else None
    row.start_time = schedule.start_time if schedule else None
    row.duration = mode.duration_minutes if scheduled else None
    row.early_window = mode.early_window if scheduled else None
    row.late_window = mode.late_window if scheduled else None
    row.early_msg = mode.early_msg if scheduled else None
    row.on_time_msg = mode.on_time_msg if scheduled else None
    row.late_msg = mode.late_msg if scheduled else None
    row.out_grace = session.out_grace
    row.user_ids = [str(u) for u in session.user_ids]
    row.category = session.category
    row.issued_by = session.issued_by
    row.is_default = session.is_default
    row.start_at = session.start_at
    row.expires_at = session.expires_at
    row.created_at = session.created_at
    return row


def row_to_record(row: Attendance) -> AttendanceRecord:
    return AttendanceRecord(
        id=row.id,
        user_id=row.user_id,
        session_id=row.location_check_id,
        qr_token=row.qr_token,
        type=row.type,
        timestamp=ensure_utc(row.timestamp),
        status=row.status,
        reason=row.reason,
    )


def _record_to_row(record: AttendanceRecord) -> Attendance:
    return Attendance(
        id=record.id,
        user_id=record.user_id,
        location_check_id=record.session_id,
        qr_token=record.qr_token,
        type=record.type.value,
        timestamp=record.timestamp,
        status=record.status.value if record.status else None,
        reason=record.reason,
    )


# ----------------------------------------------------------------
# Stores
# ----------------------------------------------------------------

class SqlSessionStore:

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def add(self, session: LocationCheckSession) -> None:
        db = self._session_factory()
        try:
            db.add(apply_session(LocationCheck(), session))
            db.commit()
        finally:
            db.close()

    def save(self, session: LocationCheckSession) -> None:
        db = self._session_factory()
        try:
            row = db.get(LocationCheck, session.id)
            if row is None:
                row = LocationCheck()
                db.add(row)
            apply_session(row, session)
            db.commit()
        finally:
            db.close()

    def get(self, session_id: uuid.UUID) -> Optional[LocationCheckSession]:
        db = self._session_factory()
        try:
            row = db.get(LocationCheck, session_id)
            return row_to_session(row) if row is not None else None
        finally:
            db.close()

    def delete(self, session_id: uuid.UUID) -> bool:
        db = self._session_factory()
        try:
            row = db.get(LocationCheck, session_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True
        finally:
            db.close()

    def list_all(self, category: Optional[str] = None) -> List[LocationCheckSession]:
        db = self._session_factory()
        try:
            query = select(LocationCheck).order_by(LocationCheck.created_at, LocationCheck.id)
            if category is not None:
                query = query.where(LocationCheck.category == category)
            return [row_to_session(r) for r in db.execute(query).scalars().all()]
        finally:
            db.close()


class SqlAttendanceStore:

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def add(self, record: AttendanceRecord) -> AttendanceRecord:
        db = self._session_factory()
        try:
            db.add(_record_to_row(record))
            db.commit()
            return record
        finally:
            db.close()

    def insert_punch_in_if_absent(
        self,
        record: AttendanceRecord,
        since: Optional[datetime],
        until: datetime,
    ) -> bool:
        db = self._session_factory()
        try:
            query = select(Attendance.id).where(
                Attendance.user_id == record.user_id,
                Attendance.location_check_id == record.session_id,
                Attendance.type == PunchType.PUNCH_IN.value,
                Attendance.timestamp <= until,
            )
            if since is not None:
                query = query.where(Attendance.timestamp > since)
            if db.execute(query.limit(1)).scalar() is not None:
                logger.debug(
                    "Punch-in déjà présent, insertion ignorée : user=%s check=%s",
                    record.user_id, record.session_id,
                )
                return False
            db.add(_record_to_row(record))
            db.commit()
            return True
        finally:
            db.close()

    def find(
        self,
        *,
        user_id: Optional[uuid.UUID] = None,
        session_id: Optional[uuid.UUID] = None,
        type: Optional[PunchType] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[AttendanceRecord]:
        db = self._session_factory()
        try:
            query = select(Attendance).order_by(Attendance.timestamp)
            if user_id is not None:
                query = query.where(Attendance.user_id == user_id)
            if session_id is not None:
                query = query.where(Attendance.location_check_id == session_id)
            if type is not None:
                query = query.where(Attendance.type == type.value)
            if since is not None:
                query = query.where(Attendance.timestamp > since)
            if until is not None:
                query = query.where(Attendance.timestamp <= until)
            return [row_to_record(r) for r in db.execute(query).scalars().all()]
        finally:
            db.close()

    def delete_in_window(self, session_id: uuid.UUID, start: datetime, end: datetime) -> int:
        db = self._session_factory()
        try:
            result = db.execute(
                delete(Attendance).where(
                    Attendance.location_check_id == session_id,
                    Attendance.timestamp >= start,
                    Attendance.timestamp <= end,
                )
            )
            db.commit()
            return result.rowcount or 0
        finally:
            db.close()


class SqlEnrollmentProvider:
    """Éligibles = utilisateurs dont le rôle peut pointer, restreints à la catégorie du check."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def eligible_user_ids(self, category: Optional[str]) -> Set[uuid.UUID]:
        db = self._session_factory()
        try:
            query = select(User.id).where(User.role.in_(settings.PUNCH_ROLES))
            if category is not None:
                query = query.where(User.category_type == category)
            return set(db.execute(query).scalars().all())
        finally:
            db.close()
