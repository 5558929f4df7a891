"""
Planificateur APScheduler des phases des checks de localisation.

Les jobs (rappel early, on-time, late + balayage des absences) sont créés et
annulés par PhaseScheduler ; ce module ne gère que le cycle de vie du
BackgroundScheduler et le réarmement des checks stockés au démarrage.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler désactivé (SCHEDULER_ENABLED=false).")
        return
    # Import local pour éviter les imports circulaires (engine → scheduler)
    from app.engine import get_engine

    scheduler.start()
    get_engine().start()
    logger.info("Scheduler démarré, %d check(s) armé(s).", len(get_engine().phase_scheduler.state))


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        from app.engine import get_engine

        get_engine().stop()
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
