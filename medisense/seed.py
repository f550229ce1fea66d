from __future__ import annotations

from sqlalchemy import select

from .auth_models import Medico, canonicalizar_especialidad, clave_especialidad
from .auth_security import hash_password
from .db import Database


def seed_base(db: Database, password: str) -> int:
    """
    Carga médicos de demostración (idempotente, por email):
    - Medicina General (especialidad por defecto de los casos IA)
    - Cardiología
    Devuelve cuántos médicos se crearon.
    """
    medicos = [
        ("Dra. Ana Torres", "a.torres@medisense.local", "Medicina General"),
        ("Dr. Luis Quispe", "l.quispe@medisense.local", "Cardiología"),
    ]
    creados = 0
    with db.session() as s:
        for name, email, specialty in medicos:
            exists = s.execute(select(Medico.id).where(Medico.email == email)).scalar_one_or_none()
            if exists is None:
                s.add(
                    Medico(
                        name=name,
                        email=email,
                        password_hash=hash_password(password),
                        specialty=canonicalizar_especialidad(specialty),
                        specialty_key=clave_especialidad(specialty),
                    )
                )
                creados += 1
    return creados
