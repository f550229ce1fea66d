from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from medisense.db import Base
from medisense.models import ahora_utc


def canonicalizar_especialidad(especialidad: str | None) -> str:
    """Recorta y colapsa espacios: ' Medicina   General ' -> 'Medicina General'."""
    return " ".join((especialidad or "").split())


def clave_especialidad(especialidad: str | None) -> str:
    """
    Clave de comparación insensible a mayúsculas (casefold, no LOWER() de SQL:
    SQLite no baja a minúsculas caracteres no ASCII como 'Í').
    """
    return canonicalizar_especialidad(especialidad).casefold()


class Medico(Base):
    """
    Usuario médico del dashboard.
    - email único (normalizado a minúsculas)
    - password_hash con bcrypt (passlib)
    - specialty_key se calcula al registrar y es la que usa el emparejamiento de casos
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    specialty: Mapped[str] = mapped_column(String(120), nullable=False)
    specialty_key: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)

    def __repr__(self) -> str:
        return f"Medico({self.name}, {self.specialty})"
