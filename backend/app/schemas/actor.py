"""
Identité de l'appelant telle que fournie par la couche d'authentification (externe).
Le moteur ne vérifie que le rôle ; la source du rôle n'est pas de son ressort.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Actor(BaseModel):
    user_id: uuid.UUID
    role: str
    category: Optional[str] = None  # categoryType de l'utilisateur

    model_config = ConfigDict(frozen=True)
