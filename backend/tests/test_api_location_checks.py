"""
Tests d'intégration API pour les checks de localisation.
Testent les URLs, les codes HTTP, la validation et le format des réponses.
"""

import uuid
from datetime import date, datetime, time, timedelta, timezone

from app.exceptions import Forbidden, InvalidSchedule, SessionNotFound
from app.schemas.location_check import (
    GeoRegion, LocationCheckCreate, LocationCheckSession, OnceSchedule, ScheduledMode,
)

S = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

ADMIN = {"X-User-Id": str(uuid.uuid4()), "X-User-Role": "admin"}
STAFF_ADMIN = {"X-User-Id": str(uuid.uuid4()), "X-User-Role": "category-admin", "X-User-Category": "staff"}


# --- Helpers ---

def once_payload(**overrides) -> dict:
    payload = {
        "latitude": 50.8466,
        "longitude": 4.3528,
        "radius": 50,
        "out_grace": 5,
        "mode": {
            "mode": "normal",
            "schedule": {"kind": "once", "date": "2026-03-02", "start_time": "10:00"},
            "duration_minutes": 60,
            "early_window": 10,
            "late_window": 15,
        },
    }
    payload.update(overrides)
    return payload


def make_session(**kwargs) -> LocationCheckSession:
    return LocationCheckSession(
        id=kwargs.get("id", uuid.uuid4()),
        region=GeoRegion(latitude=50.8466, longitude=4.3528, radius=50),
        mode=ScheduledMode(
            schedule=OnceSchedule(date=date(2026, 3, 2), start_time=time(10, 0)),
            duration_minutes=60,
            early_window=10,
            late_window=15,
        ),
        out_grace=5,
        category=kwargs.get("category"),
        is_default=kwargs.get("category") is None,
        start_at=S,
        expires_at=S + timedelta(minutes=60),
        created_at=S - timedelta(hours=1),
    )


# ============================================================
# POST /api/v1/location-checks
# ============================================================

def test_creation_succes(client, mock_engine):
    """Création d'un check valide → 201 avec la forme à plat."""
    mock_engine.create_session.return_value = make_session()

    response = client.post("/api/v1/location-checks", json=once_payload(), headers=ADMIN)

    assert response.status_code == 201
    body = response.json()
    assert body["attendance_type"] == "normal"
    assert body["schedule_type"] == "once"
    assert body["specific_date"] == "2026-03-02"
    assert body["duration"] == 60
    assert body["is_default"] is True

    data, actor = mock_engine.create_session.call_args.args
    assert isinstance(data, LocationCheckCreate)
    assert actor.role == "admin"
    assert actor.category is None


def test_creation_hebdomadaire_jours_normalises(client, mock_engine):
    mock_engine.create_session.return_value = make_session()
    payload = once_payload(mode={
        "mode": "normal",
        "schedule": {"kind": "weekly", "days_of_week": ["Wednesday", "mon"], "start_time": "08:30"},
        "duration_minutes": 45,
    })

    response = client.post("/api/v1/location-checks", json=payload, headers=STAFF_ADMIN)

    assert response.status_code == 201
    data, actor = mock_engine.create_session.call_args.args
    assert data.mode.schedule.days_of_week == ["mon", "wed"]
    assert actor.category == "staff"


def test_creation_full_time(client, mock_engine):
    mock_engine.create_session.return_value = make_session()
    response = client.post(
        "/api/v1/location-checks",
        json={"latitude": 50.8466, "longitude": 4.3528, "mode": {"mode": "full-time"}},
        headers=ADMIN,
    )
    assert response.status_code == 201
    assert mock_engine.create_session.call_args.args[0].mode.mode == "full-time"


def test_creation_planification_invalide(client, mock_engine):
    """InvalidSchedule → 400 avec le code d'erreur."""
    mock_engine.create_session.side_effect = InvalidSchedule()
    response = client.post("/api/v1/location-checks", json=once_payload(), headers=ADMIN)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_schedule"


def test_creation_role_interdit(client, mock_engine):
    mock_engine.create_session.side_effect = Forbidden()
    response = client.post(
        "/api/v1/location-checks", json=once_payload(),
        headers={"X-User-Id": str(uuid.uuid4()), "X-User-Role": "usher"},
    )
    assert response.status_code == 403


def test_creation_mode_inconnu(client, mock_engine):
    response = client.post(
        "/api/v1/location-checks", json=once_payload(mode={"mode": "sometimes"}), headers=ADMIN,
    )
    assert response.status_code == 422
    mock_engine.create_session.assert_not_called()


def test_creation_sans_coordonnees(client):
    payload = once_payload()
    del payload["latitude"]
    response = client.post("/api/v1/location-checks", json=payload, headers=ADMIN)
    assert response.status_code == 422


def test_identite_manquante(client, mock_engine):
    response = client.post("/api/v1/location-checks", json=once_payload())
    assert response.status_code == 401
    mock_engine.create_session.assert_not_called()


def test_identifiant_invalide(client):
    response = client.get(
        "/api/v1/location-checks", headers={"X-User-Id": "pas-un-uuid", "X-User-Role": "admin"},
    )
    assert response.status_code == 401


# ============================================================
# GET /api/v1/location-checks
# ============================================================

def test_liste(client, mock_engine):
    mock_engine.list_sessions.return_value = [make_session(), make_session(category="staff")]
    response = client.get("/api/v1/location-checks", headers=ADMIN)
    assert response.status_code == 200
    assert len(response.json()) == 2
    assert response.json()[1]["category"] == "staff"


def test_liste_role_interdit(client, mock_engine):
    mock_engine.list_sessions.side_effect = Forbidden()
    response = client.get("/api/v1/location-checks", headers={"X-User-Id": str(uuid.uuid4()), "X-User-Role": "usher"})
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "forbidden"


# ============================================================
# GET /api/v1/location-checks/active
# ============================================================

def test_check_actif(client, mock_engine):
    session = make_session()
    mock_engine.active_session.return_value = session
    response = client.get("/api/v1/location-checks/active", headers=STAFF_ADMIN)
    assert response.status_code == 200
    assert response.json()["id"] == str(session.id)


def test_aucun_check_actif(client, mock_engine):
    mock_engine.active_session.return_value = None
    response = client.get("/api/v1/location-checks/active", headers=STAFF_ADMIN)
    assert response.status_code == 200
    assert response.json() is None


# ============================================================
# PUT /api/v1/location-checks/{id}
# ============================================================

def test_modification_succes(client, mock_engine):
    session = make_session()
    mock_engine.update_session.return_value = session
    response = client.put(f"/api/v1/location-checks/{session.id}", json=once_payload(), headers=ADMIN)
    assert response.status_code == 200
    assert mock_engine.update_session.call_args.args[0] == session.id


def test_modification_introuvable(client, mock_engine):
    mock_engine.update_session.side_effect = SessionNotFound()
    response = client.put(f"/api/v1/location-checks/{uuid.uuid4()}", json=once_payload(), headers=ADMIN)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "session_not_found"


# ============================================================
# DELETE /api/v1/location-checks/{id}
# ============================================================

def test_annulation_succes(client, mock_engine):
    mock_engine.cancel_session.return_value = True
    response = client.delete(f"/api/v1/location-checks/{uuid.uuid4()}", headers=ADMIN)
    assert response.status_code == 204


def test_annulation_introuvable(client, mock_engine):
    mock_engine.cancel_session.return_value = False
    response = client.delete(f"/api/v1/location-checks/{uuid.uuid4()}", headers=ADMIN)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "session_not_found"


def test_annulation_check_protege(client, mock_engine):
    mock_engine.cancel_session.side_effect = Forbidden("Impossible de supprimer un check par défaut.")
    response = client.delete(f"/api/v1/location-checks/{uuid.uuid4()}", headers=STAFF_ADMIN)
    assert response.status_code == 403
    assert response.json()["detail"]["message"] == "Impossible de supprimer un check par défaut."


def test_sante(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
