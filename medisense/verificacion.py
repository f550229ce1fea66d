from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import select, update

from .db import Database
from .errors import CampoFaltante, CodigoExpirado, CodigoIncorrecto, NoEncontrado, SinCodigoActivo
from .models import CodigoVerificacion, ahora_utc
from .services import buscar_paciente, paciente_flat

logger = logging.getLogger(__name__)

TTL_CODIGO_SEGUNDOS = 60


class EnviadorCodigo(Protocol):
    def enviar_codigo(self, destinatario: str | None, codigo: str) -> bool: ...


@dataclass(frozen=True)
class CodigoEmitido:
    patient_id: int
    expires_at: datetime


def generar_codigo() -> str:
    """6 dígitos uniformes en 000000-999999, con ceros a la izquierda."""
    return f"{secrets.randbelow(1_000_000):06d}"


def emitir_codigo(
    db: Database,
    correo: EnviadorCodigo,
    dni: str | None,
    ttl_seconds: int = TTL_CODIGO_SEGUNDOS,
    ahora: datetime | None = None,
) -> CodigoEmitido:
    """
    Use case: enviar código de verificación.
    - el código nuevo pasa a ser el único autoritativo (el más reciente sin usar)
    - el envío por email es fire-and-forget: si falla, el código sigue siendo válido
    """
    dni = (dni or "").strip()
    if not dni:
        raise CampoFaltante("DNI es requerido")

    ahora = ahora or ahora_utc()
    expires_at = ahora + timedelta(seconds=ttl_seconds)

    with db.session() as s:
        p = buscar_paciente(s, dni)
        if p is None:
            raise NoEncontrado()

        codigo = generar_codigo()
        s.add(CodigoVerificacion(patient_id=p.id, code=codigo, created_at=ahora, expires_at=expires_at))
        patient_id, email = p.id, p.email

    # fuera de la transacción: el código ya está confirmado en la BD
    try:
        correo.enviar_codigo(email, codigo)
    except Exception:
        logger.exception(f"Fallo del envío del código al paciente {patient_id}")
    return CodigoEmitido(patient_id=patient_id, expires_at=expires_at)


def verificar_codigo(
    db: Database,
    dni: str | None,
    codigo: str | None,
    ahora: datetime | None = None,
) -> dict[str, Any]:
    """
    Use case: verificar código.
    El orden de los chequeos importa: un código equivocado es siempre 'incorrecto',
    aunque además esté vencido. Lectura y marcado como usado van en la misma transacción.
    """
    dni = (dni or "").strip()
    codigo = codigo or ""
    if not dni or not codigo:
        raise CampoFaltante("DNI y código son requeridos")

    ahora = ahora or ahora_utc()

    with db.session() as s:
        p = buscar_paciente(s, dni)
        if p is None:
            raise NoEncontrado()

        q = (
            select(CodigoVerificacion)
            .where(CodigoVerificacion.patient_id == p.id, CodigoVerificacion.is_used.is_(False))
            .order_by(CodigoVerificacion.created_at.desc(), CodigoVerificacion.id.desc())
            .limit(1)
            .with_for_update()
        )
        record = s.scalars(q).first()
        if record is None:
            raise SinCodigoActivo()

        if record.code != codigo:
            raise CodigoIncorrecto()

        if ahora > record.expires_at:
            raise CodigoExpirado()

        # marcado condicional: de dos verificaciones simultáneas solo una consume el código
        marcado = s.execute(
            update(CodigoVerificacion)
            .where(CodigoVerificacion.id == record.id, CodigoVerificacion.is_used.is_(False))
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        if marcado.rowcount != 1:
            raise SinCodigoActivo()

        logger.info(f"Paciente {p.id} verificado")
        return paciente_flat(p)
