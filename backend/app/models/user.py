"""
Modèle SQLAlchemy pour les utilisateurs.
Version minimale : le moteur n'a besoin que du rôle et de la catégorie
(la gestion des comptes et l'authentification sont externes).
"""

import uuid
from sqlalchemy import Column, DateTime, String, Uuid, func

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(200), nullable=True)
    role = Column(String(50), nullable=False)  # developer, admin, category-admin, usher, member
    category_type = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
