from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from medisense.auth_models import Medico, canonicalizar_especialidad, clave_especialidad
from medisense.auth_security import hash_password, token_medico, verify_password
from medisense.db import Database
from medisense.errors import CampoFaltante, CredencialesInvalidas, YaExiste


def _normaliza_email(email: str | None) -> str:
    return (email or "").strip().lower()


def registrar_medico(db: Database, name: str, email: str, password: str, specialty: str) -> Medico:
    email = _normaliza_email(email)
    specialty = canonicalizar_especialidad(specialty)
    name = (name or "").strip()
    if not name or not email or not password or not specialty:
        raise CampoFaltante("Campos incompletos")

    with db.session() as s:
        exists = s.execute(select(Medico.id).where(Medico.email == email)).scalar_one_or_none()
        if exists is not None:
            raise YaExiste("El usuario ya existe")

        m = Medico(
            name=name,
            email=email,
            password_hash=hash_password(password),
            specialty=specialty,
            specialty_key=clave_especialidad(specialty),
            is_active=True,
        )
        s.add(m)
        s.flush()
        return m


def autenticar(db: Database, email: str, password: str) -> Medico:
    """Mismo error para email desconocido, médico inactivo o password incorrecto."""
    email = _normaliza_email(email)
    with db.session() as s:
        m = s.execute(select(Medico).where(Medico.email == email)).scalar_one_or_none()
        if not m or not m.is_active:
            raise CredencialesInvalidas()
        if not password or not verify_password(password, m.password_hash):
            raise CredencialesInvalidas()
        return m


def get_medico_by_id(db: Database, medico_id: int) -> Medico | None:
    with db.session() as s:
        return s.get(Medico, medico_id)


@dataclass(frozen=True)
class Sesion:
    medico: Medico
    token: str


def iniciar_sesion(db: Database, email: str, password: str, secret: str, expire_minutes: int) -> Sesion:
    """Autentica y emite el token de sesión con id y especialidad del médico como claims."""
    m = autenticar(db, email, password)
    token = token_medico(m.id, m.specialty, secret, expire_minutes)
    return Sesion(medico=m, token=token)
