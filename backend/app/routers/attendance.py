"""
Router pour les pointages géolocalisés et l'historique des présences.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_actor
from app.engine import AttendanceEngine, get_engine
from app.exceptions import AttendanceError
from app.routers.errors import to_http_exception
from app.schemas.actor import Actor
from app.schemas.attendance import AttendanceHistory, PunchRequest, PunchResult, PunchType

router = APIRouter(prefix="/api/v1/attendance", tags=["Présences"])


@router.post("/punch", response_model=PunchResult, status_code=201, summary="Pointer (entrée / sortie)")
def punch(
    data: PunchRequest,
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """
    Enregistre un pointage à la position courante.

    Le moteur choisit le check dont la zone contient la position et décide
    entrée ou sortie. Refus possibles (409) : hors zone, encore dans la zone,
    délai de sortie en cours (minutes_left), session terminée, déjà sorti.
    """
    try:
        return engine.submit_punch(actor, data.latitude, data.longitude, data.reason)
    except AttendanceError as e:
        raise to_http_exception(e)


@router.get("/history", response_model=AttendanceHistory, summary="Historique d'une journée")
def get_history(
    day: Optional[date] = Query(default=None, alias="date"),
    user_id: Optional[uuid.UUID] = Query(default=None),
    type: Optional[PunchType] = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """
    Présences d'une journée (aujourd'hui par défaut), de la plus récente à la plus ancienne.
    Le filtre user_id est réservé aux gestionnaires (ignoré pour les autres rôles).
    """
    day = day or engine.today()
    records = engine.history(actor, day=day, user_id=user_id, punch_type=type)
    return AttendanceHistory(
        date=day.isoformat(),
        records=records,
        total=len(records),
    )
