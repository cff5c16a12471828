from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from mostrador.core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """
    Crea el engine síncrono.

    SQLite (desarrollo y tests) no admite pool_size y necesita compartir
    conexiones entre hilos; en PostgreSQL se usa el pool normal.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


sync_engine = build_engine(settings.database_url, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
