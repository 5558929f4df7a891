"""
Connexion à la base de données.
PostgreSQL en production, SQLite accepté pour le développement local et les tests.

Les stores (app.repositories.sql) ouvrent une session SessionLocal par opération :
ils sont appelés depuis les requêtes HTTP comme depuis les jobs du scheduler.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import settings

# SQLite refuse par défaut le partage de connexion entre threads (jobs du scheduler)
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
