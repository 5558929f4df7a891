"""
Tests unitaires pour le registre des checks de localisation.
"""

import uuid
from datetime import datetime, time, timedelta, timezone

import pytest

from app.exceptions import Forbidden, InvalidSchedule, SessionNotFound, WaitBeforeAutoExit
from app.schemas.location_check import LocationCheckCreate, ScheduledMode, WeeklySchedule

S = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
INSIDE = (50.8467, 4.3529)


# --- Création ---

def test_creation_par_un_admin_globale_et_protegee(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.admin)

    assert session.category is None
    assert session.is_default is True
    assert session.issued_by == actors.admin.user_id
    assert session.start_at == S
    assert session.expires_at == S + timedelta(minutes=60)
    assert engine.registry.get(session.id) == session


def test_creation_par_un_admin_de_categorie(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.staff_admin)
    assert session.category == "staff"
    assert session.is_default is False


def test_rayon_par_defaut(engine, actors, once_check):
    data = once_check().model_copy(update={"radius": None})
    session = engine.create_session(data, actors.admin)
    assert session.region.radius == 100


def test_full_time_sans_expiration(engine, actors, full_time_check, clock):
    session = engine.create_session(full_time_check(), actors.admin)
    assert session.start_at == clock.now()
    assert session.expires_at is None


def test_creation_refusee_pour_un_role_non_gestionnaire(engine, actors, once_check):
    with pytest.raises(Forbidden):
        engine.create_session(once_check(), actors.usher)


def test_duree_nulle_refusee(engine, actors, once_check, session_store):
    with pytest.raises(InvalidSchedule):
        engine.create_session(once_check(duration=0), actors.admin)
    assert session_store.sessions == {}


def test_hebdomadaire_sans_jour_refuse(engine, actors, fake_scheduler):
    data = LocationCheckCreate(
        latitude=50.8466,
        longitude=4.3528,
        mode=ScheduledMode(
            schedule=WeeklySchedule(days_of_week=[], start_time=time(10, 0)),
            duration_minutes=60,
        ),
    )
    with pytest.raises(InvalidSchedule):
        engine.create_session(data, actors.admin)
    assert fake_scheduler.jobs == {}


def test_inscrits_filtres_par_eligibilite(engine, actors, once_check):
    """Un admin de catégorie ne peut inscrire que les utilisateurs de sa catégorie."""
    stranger = uuid.uuid4()
    data = once_check(user_ids=[actors.usher.user_id, actors.guest_usher.user_id, stranger, actors.usher.user_id])

    session = engine.create_session(data, actors.staff_admin)

    assert session.user_ids == [actors.usher.user_id]


# --- Modification ---

def test_modification_remplace_la_definition(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.admin)

    updated = engine.update_session(session.id, once_check(start=time(14, 0), duration=30), actors.admin)

    assert updated.id == session.id
    assert updated.created_at == session.created_at
    assert updated.start_at == datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)
    assert updated.expires_at == datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)
    assert engine.registry.get(session.id) == updated


def test_modification_check_inexistant(engine, actors, once_check, fake_scheduler):
    with pytest.raises(SessionNotFound):
        engine.update_session(uuid.uuid4(), once_check(), actors.admin)
    assert fake_scheduler.jobs == {}


def test_modification_invalide_conserve_l_ancien_check(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.admin)
    with pytest.raises(InvalidSchedule):
        engine.update_session(session.id, once_check(duration=-5), actors.admin)
    assert engine.registry.get(session.id) == session


def test_modification_hors_categorie_refusee(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.admin)
    with pytest.raises(Forbidden):
        engine.update_session(session.id, once_check(), actors.staff_admin)


# --- Annulation ---

def test_annulation_supprime_les_presences_de_la_fenetre(engine, actors, once_check, attendance_store, session_store, clock):
    session = engine.create_session(once_check(), actors.staff_admin)
    clock.advance(minutes=1)
    other = engine.create_session(once_check(start=time(16, 0)), actors.staff_admin)
    engine.submit_punch(actors.usher, *INSIDE, now=S + timedelta(minutes=5))
    engine.submit_punch(actors.usher, *INSIDE, now=datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc))

    assert engine.cancel_session(session.id, actors.staff_admin) is True

    assert session.id not in session_store.sessions
    assert [r.session_id for r in attendance_store.records] == [other.id]


def test_annulation_oublie_les_sorties_en_cours(engine, actors, once_check):
    session = engine.create_session(once_check(out_grace=5), actors.admin)
    engine.submit_punch(actors.usher, *INSIDE, now=S)
    with pytest.raises(WaitBeforeAutoExit):
        engine.submit_punch(actors.usher, 50.8500, 4.3600, now=S + timedelta(minutes=10))
    assert (actors.usher.user_id, session.id) in engine.exit_tracker

    engine.cancel_session(session.id, actors.admin)

    assert (actors.usher.user_id, session.id) not in engine.exit_tracker


def test_check_par_defaut_protege(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.admin)
    with pytest.raises(Forbidden):
        engine.cancel_session(session.id, actors.staff_admin)
    assert engine.registry.get(session.id) is not None


def test_annulation_refusee_pour_un_role_non_gestionnaire(engine, actors, once_check):
    session = engine.create_session(once_check(), actors.staff_admin)
    with pytest.raises(Forbidden):
        engine.cancel_session(session.id, actors.usher)


# --- Lecture ---

def test_liste_par_portee(engine, actors, once_check, clock):
    global_check = engine.create_session(once_check(start=time(11, 0)), actors.admin)
    clock.advance(minutes=1)
    staff_check = engine.create_session(once_check(start=time(12, 0)), actors.staff_admin)

    assert [s.id for s in engine.list_sessions(actors.admin)] == [staff_check.id, global_check.id]
    assert [s.id for s in engine.list_sessions(actors.staff_admin)] == [staff_check.id]
    with pytest.raises(Forbidden):
        engine.list_sessions(actors.usher)


def test_checks_actifs(engine, actors, once_check, full_time_check, clock):
    once = engine.create_session(once_check(), actors.admin)
    clock.advance(minutes=1)
    full_time = engine.create_session(full_time_check(), actors.admin)

    assert [s.id for s in engine.list_active(S - timedelta(minutes=1))] == [full_time.id]
    assert [s.id for s in engine.list_active(S + timedelta(minutes=30))] == [once.id, full_time.id]
    assert [s.id for s in engine.list_active(S + timedelta(minutes=60))] == [full_time.id]


def test_check_actif_de_l_utilisateur(engine, actors, once_check, clock):
    engine.create_session(once_check(start=time(8, 30)), actors.admin)
    recent = engine.create_session(once_check(start=time(8, 45)), actors.staff_admin)

    assert engine.active_session(actors.usher).id == recent.id
    assert engine.active_session(actors.guest_usher).start_at == datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)

    clock.current = S + timedelta(hours=3)
    assert engine.active_session(actors.usher) is None
