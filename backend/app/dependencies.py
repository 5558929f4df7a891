"""
Dépendances FastAPI partagées par les routers.

L'authentification est assurée en amont (passerelle / middleware) : elle
transmet l'identité de l'appelant dans les en-têtes X-User-Id, X-User-Role
et X-User-Category. Un déploiement peut surcharger get_current_actor.
"""

import uuid
from typing import Optional

from fastapi import Header, HTTPException

from app.schemas.actor import Actor


def get_current_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_category: Optional[str] = Header(default=None),
) -> Actor:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Identité de l'appelant manquante.")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Identifiant utilisateur invalide.")
    return Actor(user_id=user_id, role=x_user_role, category=x_user_category or None)
