from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Base ORM para todos los modelos."""
    pass


class Database:
    """
    Handle del almacén relacional: un engine (con su pool) y una fábrica de sesiones.
    Se crea una vez por proceso y se inyecta en servicios y API.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(
            url,
            echo=echo,               # True para ver las queries
            future=True,
            connect_args=connect_args,
        )
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )

    def init_db(self) -> None:
        """Crea las tablas si no existen."""
        # registra todos los modelos en el metadata
        from . import auth_models, models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Una sesión = una transacción:
        - commit si todo va bien
        - rollback ante cualquier excepción
        - close siempre
        """
        session: Session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
