"""
Verrous par clé pour sérialiser les écritures d'un même couple (utilisateur, check).

Un pointage (étapes entrée/sortie) et le balayage des absences pour le même
utilisateur prennent le même verrou : un utilisateur qui pointe à l'instant
exact du balayage n'est jamais enregistré à la fois présent et absent.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """Registre de verrous créés à la demande, libérés quand plus personne ne les attend."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
