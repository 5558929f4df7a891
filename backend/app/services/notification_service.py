"""
Diffusion des rappels de phase (early / on-time / late).

Un déclenchement du scheduler ne notifie jamais directement : il dépose un
PhaseEvent dans une file consommée par un thread dédié qui appelle le Notifier.
La correction du planning ne dépend donc ni de la latence ni des pannes de
la livraison (socket, push...). Une erreur du Notifier est journalisée puis ignorée.
"""

import logging
import queue
import threading
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class PhaseEvent:
    session_id: uuid.UUID
    phase: str
    message: str
    scope: str = GLOBAL_SCOPE  # catégorie du check, ou "global"


class Notifier(Protocol):
    def notify(self, scope: str, phase: str, message: str) -> None:
        ...


class LoggingNotifier:
    """Notifier par défaut : trace les rappels (la livraison réelle est externe)."""

    def notify(self, scope: str, phase: str, message: str) -> None:
        logger.info("Rappel [%s] pour %s : %s", phase, scope, message)


class NotificationDispatcher:
    """File de PhaseEvent + thread consommateur."""

    _STOP = object()

    def __init__(self, notifier: Notifier):
        self._notifier = notifier
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def publish(self, event: PhaseEvent) -> None:
        self._queue.put(event)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="phase-notifier", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._queue.put(self._STOP)
        self._thread.join(timeout)
        self._thread = None

    def drain(self) -> int:
        """Livre de manière synchrone tous les événements en attente (utilisé sans thread)."""
        delivered = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            if event is self._STOP:
                continue
            self._deliver(event)
            delivered += 1

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is self._STOP:
                return
            self._deliver(event)

    def _deliver(self, event: PhaseEvent) -> None:
        try:
            self._notifier.notify(event.scope, event.phase, event.message)
        except Exception as exc:
            logger.error(
                "Échec de la notification %s pour le check %s : %s",
                event.phase, event.session_id, exc,
            )
