from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth_models import Medico, canonicalizar_especialidad, clave_especialidad
from .db import Database
from .errors import CampoFaltante, NoEncontrado, SinMedicoDisponible, YaExiste
from .models import (
    Caso,
    Cita,
    EstadoCaso,
    EstadoCita,
    MensajeConversacion,
    Paciente,
    RegistroBienestar,
)

logger = logging.getLogger(__name__)

ESPECIALIDAD_POR_DEFECTO = "Medicina General"
PRECIO_CASO = Decimal("8.00")
PRECIO_CITA = Decimal("8.00")


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class DatosPaciente:
    """Identidad del paciente tal como llega de la IA o del dashboard."""
    dni: str | None
    nombres: str | None = None
    apellidos: str | None = None
    whatsapp: str | None = None
    email: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(p.strip() for p in (self.nombres, self.apellidos) if p and p.strip())


@dataclass(frozen=True)
class HallazgosClinicos:
    conversation_summary: str | None = None
    symptoms: list[str] | str | None = None
    specialty: str | None = None
    risk_level: str | None = None
    possible_diagnosis: str | None = None
    recommended_treatment: str | None = None
    diagnosis_justification: str | None = None


def normalizar_sintomas(symptoms: Iterable[Any] | str | None) -> list[str]:
    """
    Acepta lista o texto separado por comas y devuelve la secuencia ordenada de
    síntomas recortados: "fiebre, tos" -> ["fiebre", "tos"]. Se descartan vacíos.
    """
    if symptoms is None:
        return []
    if isinstance(symptoms, str):
        partes: Iterable[Any] = symptoms.split(",")
    else:
        partes = symptoms
    return [str(p).strip() for p in partes if p is not None and str(p).strip()]


def a_utc_naive(dt: datetime) -> datetime:
    """Las columnas DateTime guardan UTC sin zona."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def iso_utc(dt: datetime | None) -> str | None:
    """ISO 8601 con offset explícito: '2025-01-01T10:00:00+00:00'."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat()


# =========================
# Serialización 'flat' (dict serializables, sin lazy-load tras cerrar sesión)
# =========================
def medico_flat(m: Medico) -> dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "email": m.email,
        "specialty": m.specialty,
        "is_active": m.is_active,
    }


def paciente_flat(p: Paciente) -> dict[str, Any]:
    return {
        "id": p.id,
        "full_name": p.full_name,
        "document_number": p.document_number,
        "whatsapp_number": p.whatsapp_number,
        "email": p.email,
        "created_at": iso_utc(p.created_at),
    }


def caso_flat(c: Caso) -> dict[str, Any]:
    return {
        "id": c.id,
        "patient_id": c.patient_id,
        "assigned_doctor_id": c.assigned_doctor_id,
        "specialty": c.specialty,
        "risk_level": c.risk_level,
        "status": c.status.value,
        "ai_summary": c.ai_summary,
        "ai_symptoms": list(c.ai_symptoms or []),
        "possible_diagnosis": c.possible_diagnosis,
        "recommended_treatment": c.recommended_treatment,
        "diagnosis_justification": c.diagnosis_justification,
        "estimated_price": float(c.estimated_price),
        "created_at": iso_utc(c.created_at),
    }


def cita_flat(a: Cita) -> dict[str, Any]:
    return {
        "id": a.id,
        "case_id": a.case_id,
        "patient_id": a.patient_id,
        "doctor_id": a.doctor_id,
        "specialty": a.specialty,
        "scheduled_date": iso_utc(a.scheduled_date),
        "status": a.status.value,
        "price": float(a.price),
        "created_at": iso_utc(a.created_at),
    }


def bienestar_flat(r: RegistroBienestar) -> dict[str, Any]:
    return {
        "id": r.id,
        "patient_id": r.patient_id,
        "user_message": r.user_message,
        "ai_response": r.ai_response,
        "category": r.category,
        "created_at": iso_utc(r.created_at),
    }


def mensaje_flat(m: MensajeConversacion) -> dict[str, Any]:
    return {
        "id": m.id,
        "patient_id": m.patient_id,
        "case_id": m.case_id,
        "sender": m.sender,
        "message": m.message,
        "created_at": iso_utc(m.created_at),
    }


# =========================
# Registro de pacientes
# =========================
def _limpia_dni(dni: str | None) -> str:
    return (dni or "").strip()


def buscar_paciente(s: Session, dni: str) -> Paciente | None:
    return s.execute(select(Paciente).where(Paciente.document_number == dni)).scalar_one_or_none()


def _nuevo_paciente(s: Session, datos: DatosPaciente) -> Paciente:
    if not datos.full_name:
        raise CampoFaltante("Nombres y apellidos del paciente son requeridos")
    p = Paciente(
        full_name=datos.full_name,
        document_number=_limpia_dni(datos.dni),
        whatsapp_number=datos.whatsapp,
        email=datos.email,
    )
    s.add(p)
    s.flush()
    return p


def obtener_o_crear_paciente(s: Session, datos: DatosPaciente) -> Paciente:
    """
    Find-or-create por número de documento, dentro de la transacción del llamador.
    Los datos demográficos solo se usan si el paciente no existe.
    Una carrera sobre el mismo DNI la resuelve la constraint UNIQUE (IntegrityError -> 409).
    """
    dni = _limpia_dni(datos.dni)
    if not dni:
        raise CampoFaltante("DNI es requerido")

    p = buscar_paciente(s, dni)
    if p is not None:
        return p
    return _nuevo_paciente(s, datos)


def paciente_por_dni(db: Database, dni: str) -> dict[str, Any]:
    dni = _limpia_dni(dni)
    with db.session() as s:
        p = buscar_paciente(s, dni) if dni else None
        if p is None:
            raise NoEncontrado()
        return paciente_flat(p)


def crear_paciente(db: Database, datos: DatosPaciente) -> dict[str, Any]:
    """Alta explícita desde el dashboard: un DNI repetido es un conflicto, no un find."""
    dni = _limpia_dni(datos.dni)
    if not dni:
        raise CampoFaltante("DNI es requerido")

    with db.session() as s:
        if buscar_paciente(s, dni) is not None:
            raise YaExiste("Ya existe un paciente con ese DNI")
        return paciente_flat(_nuevo_paciente(s, datos))


def obtener_o_crear(db: Database, datos: DatosPaciente) -> dict[str, Any]:
    with db.session() as s:
        return paciente_flat(obtener_o_crear_paciente(s, datos))


def lista_pacientes_flat(db: Database) -> list[dict[str, Any]]:
    with db.session() as s:
        return [paciente_flat(p) for p in s.scalars(select(Paciente).order_by(Paciente.full_name))]


def lista_medicos_flat(db: Database) -> list[dict[str, Any]]:
    with db.session() as s:
        rows = s.scalars(select(Medico).where(Medico.is_active.is_(True)).order_by(Medico.specialty, Medico.name))
        return [medico_flat(m) for m in rows]


# =========================
# Caso + cita desde la IA (use case core)
# =========================
def resolver_especialidad(specialty: str | None) -> str:
    return canonicalizar_especialidad(specialty) or ESPECIALIDAD_POR_DEFECTO


def buscar_medico_por_especialidad(s: Session, specialty: str) -> Medico | None:
    q = (
        select(Medico)
        .where(Medico.specialty_key == clave_especialidad(specialty), Medico.is_active.is_(True))
        .order_by(Medico.id.asc())
        .limit(1)
    )
    return s.scalars(q).first()


def crear_caso_desde_ia(
    db: Database,
    paciente: DatosPaciente,
    hallazgos: HallazgosClinicos,
    appointment_time: datetime | None,
) -> dict[str, Any]:
    """
    Use case: registrar un caso clínico producido por el triaje IA.
    - la fecha/hora de la cita es obligatoria (sin ella no se escribe nada)
    - find-or-create del paciente por DNI
    - primer médico activo de la especialidad (sin fallback a otro médico)
    - caso REGISTRADO + cita CONFIRMADA, sin paso de aprobación
    Todo en una única transacción: si algo falla no queda ni paciente nuevo ni caso huérfano.
    """
    if appointment_time is None:
        raise CampoFaltante("El usuario debe elegir una fecha y hora para la cita.")

    specialty = resolver_especialidad(hallazgos.specialty)
    logger.info(f"Caso desde IA: buscando médico para especialidad '{specialty}'")

    with db.session() as s:
        p = obtener_o_crear_paciente(s, paciente)

        medico = buscar_medico_por_especialidad(s, specialty)
        if medico is None:
            logger.warning(f"No existe médico para la especialidad '{specialty}'")
            raise SinMedicoDisponible()

        caso = Caso(
            patient_id=p.id,
            assigned_doctor_id=medico.id,
            specialty=specialty,
            risk_level=hallazgos.risk_level,
            status=EstadoCaso.REGISTRADO,
            ai_summary=hallazgos.conversation_summary,
            ai_symptoms=normalizar_sintomas(hallazgos.symptoms),
            possible_diagnosis=hallazgos.possible_diagnosis,
            recommended_treatment=hallazgos.recommended_treatment,
            diagnosis_justification=hallazgos.diagnosis_justification,
            estimated_price=PRECIO_CASO,
        )
        s.add(caso)
        s.flush()

        cita = Cita(
            case_id=caso.id,
            patient_id=p.id,
            doctor_id=medico.id,
            specialty=specialty,
            scheduled_date=a_utc_naive(appointment_time),
            status=EstadoCita.CONFIRMADA,
            price=PRECIO_CITA,
        )
        s.add(cita)
        s.flush()

        logger.info(f"Caso {caso.id} y cita {cita.id} creados para médico {medico.id}")
        return {"patient": paciente_flat(p), "case": caso_flat(caso), "appointment": cita_flat(cita)}


# =========================
# Dashboard del médico
# =========================
def casos_del_medico_flat(db: Database, medico_id: int) -> list[dict[str, Any]]:
    """Casos asignados al médico, los más recientes primero."""
    with db.session() as s:
        rows = s.execute(
            select(Caso, Paciente.full_name, Paciente.document_number)
            .join(Paciente, Paciente.id == Caso.patient_id)
            .where(Caso.assigned_doctor_id == medico_id)
            .order_by(Caso.created_at.desc(), Caso.id.desc())
        ).all()
        return [
            {**caso_flat(c), "patient_name": full_name, "dni": dni}
            for c, full_name, dni in rows
        ]


def citas_del_medico_flat(db: Database, medico_id: int) -> list[dict[str, Any]]:
    """Citas del médico, las más próximas primero."""
    with db.session() as s:
        rows = s.execute(
            select(Cita, Paciente.full_name, Paciente.document_number)
            .join(Paciente, Paciente.id == Cita.patient_id)
            .where(Cita.doctor_id == medico_id)
            .order_by(Cita.scheduled_date.asc(), Cita.id.asc())
        ).all()
        return [
            {**cita_flat(a), "patient_name": full_name, "dni": dni}
            for a, full_name, dni in rows
        ]


# =========================
# Historial: bienestar y conversaciones (solo append)
# =========================
def registrar_bienestar(
    db: Database,
    paciente: DatosPaciente,
    user_message: str | None,
    ai_response: str | None,
    category: str | None = None,
) -> dict[str, Any]:
    if not user_message or not ai_response:
        raise CampoFaltante("Datos incompletos")

    with db.session() as s:
        p = obtener_o_crear_paciente(s, paciente)
        r = RegistroBienestar(patient_id=p.id, user_message=user_message, ai_response=ai_response, category=category)
        s.add(r)
        s.flush()
        return bienestar_flat(r)


def registrar_mensaje(
    db: Database,
    dni: str | None,
    sender: str | None,
    message: str | None,
    case_id: int | None = None,
) -> dict[str, Any]:
    dni = _limpia_dni(dni)
    if not dni or not sender or not message:
        raise CampoFaltante("dni, sender y message son requeridos")

    with db.session() as s:
        p = buscar_paciente(s, dni)
        if p is None:
            raise NoEncontrado()

        if case_id is not None:
            caso = s.get(Caso, case_id)
            if caso is None or caso.patient_id != p.id:
                raise NoEncontrado("Caso no encontrado para este paciente")

        m = MensajeConversacion(patient_id=p.id, case_id=case_id, sender=sender, message=message)
        s.add(m)
        s.flush()
        return mensaje_flat(m)


def conversacion_por_dni_flat(db: Database, dni: str) -> list[dict[str, Any]]:
    """Historial de chat del paciente, del más antiguo al más reciente."""
    dni = _limpia_dni(dni)
    with db.session() as s:
        p = buscar_paciente(s, dni) if dni else None
        if p is None:
            raise NoEncontrado()

        q = (
            select(MensajeConversacion)
            .where(MensajeConversacion.patient_id == p.id)
            .order_by(MensajeConversacion.created_at.asc(), MensajeConversacion.id.asc())
        )
        return [mensaje_flat(m) for m in s.scalars(q)]
