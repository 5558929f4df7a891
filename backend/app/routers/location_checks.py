"""
Router pour les checks de localisation.
Création, modification et annulation réservées aux gestionnaires ;
le check actif est consultable par tout utilisateur authentifié.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends

from app.dependencies import get_current_actor
from app.engine import AttendanceEngine, get_engine
from app.exceptions import AttendanceError, SessionNotFound
from app.routers.errors import to_http_exception
from app.schemas.actor import Actor
from app.schemas.location_check import LocationCheckCreate, LocationCheckResponse

router = APIRouter(prefix="/api/v1/location-checks", tags=["Checks de localisation"])


@router.get("", response_model=List[LocationCheckResponse], summary="Lister les checks")
def list_location_checks(
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """Checks visibles par le gestionnaire, du plus récent au plus ancien."""
    try:
        sessions = engine.list_sessions(actor)
    except AttendanceError as e:
        raise to_http_exception(e)
    return [LocationCheckResponse.from_session(s) for s in sessions]


@router.post("", response_model=LocationCheckResponse, status_code=201, summary="Créer un check")
def create_location_check(
    data: LocationCheckCreate,
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """
    Crée un check de localisation et planifie ses rappels.
    Mode "full-time" : pas de fenêtre. Mode "normal" : date unique ou jours de la semaine,
    heure de début, durée et fenêtres early / late en minutes.
    """
    try:
        session = engine.create_session(data, actor)
    except AttendanceError as e:
        raise to_http_exception(e)
    return LocationCheckResponse.from_session(session)


@router.get("/active", response_model=Optional[LocationCheckResponse], summary="Check actif")
def get_active_location_check(
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """Check ouvert en ce moment pour l'utilisateur (le plus récent), ou null."""
    session = engine.active_session(actor)
    return LocationCheckResponse.from_session(session) if session else None


@router.put("/{check_id}", response_model=LocationCheckResponse, summary="Modifier un check")
def update_location_check(
    check_id: uuid.UUID,
    data: LocationCheckCreate,
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """Remplace la définition du check et replanifie ses rappels."""
    try:
        session = engine.update_session(check_id, data, actor)
    except AttendanceError as e:
        raise to_http_exception(e)
    return LocationCheckResponse.from_session(session)


@router.delete("/{check_id}", status_code=204, summary="Annuler un check")
def delete_location_check(
    check_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    engine: AttendanceEngine = Depends(get_engine),
):
    """
    Annule un check : rappels déprogrammés et présences de sa fenêtre supprimées.
    Un check par défaut ne peut être supprimé que par un rôle privilégié.
    """
    try:
        deleted = engine.cancel_session(check_id, actor)
    except AttendanceError as e:
        raise to_http_exception(e)
    if not deleted:
        raise to_http_exception(SessionNotFound())
