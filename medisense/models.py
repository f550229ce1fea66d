from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def ahora_utc() -> datetime:
    """UTC naive: es lo que guardan las columnas DateTime sin zona."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EstadoCaso(enum.Enum):
    REGISTRADO = "REGISTRADO"
    EN_ATENCION = "EN_ATENCION"
    CERRADO = "CERRADO"


class EstadoCita(enum.Enum):
    PENDIENTE = "PENDIENTE"
    CONFIRMADA = "CONFIRMADA"
    CANCELADA = "CANCELADA"
    COMPLETADA = "COMPLETADA"


class Paciente(Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    document_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    whatsapp_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)

    codigos: Mapped[list["CodigoVerificacion"]] = relationship(back_populates="paciente")
    casos: Mapped[list["Caso"]] = relationship(back_populates="paciente")
    citas: Mapped[list["Cita"]] = relationship(back_populates="paciente")

    def __repr__(self) -> str:
        return f"Paciente({self.full_name}, {self.document_number})"


class CodigoVerificacion(Base):
    """Código de un solo uso. Nunca se borra: los vencidos quedan como auditoría."""
    __tablename__ = "patient_verification_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    paciente: Mapped["Paciente"] = relationship(back_populates="codigos")


class Caso(Base):
    __tablename__ = "cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False)
    assigned_doctor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    specialty: Mapped[str] = mapped_column(String(120), nullable=False)
    risk_level: Mapped[str | None] = mapped_column(String(30), nullable=True)
    status: Mapped[EstadoCaso] = mapped_column(Enum(EstadoCaso), default=EstadoCaso.REGISTRADO, nullable=False)

    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_symptoms: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    possible_diagnosis: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommended_treatment: Mapped[str | None] = mapped_column(Text, nullable=True)
    diagnosis_justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    estimated_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)

    paciente: Mapped["Paciente"] = relationship(back_populates="casos")
    cita: Mapped["Cita"] = relationship(back_populates="caso", uselist=False)


class Cita(Base):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id"), nullable=False, unique=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False)
    doctor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    specialty: Mapped[str] = mapped_column(String(120), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[EstadoCita] = mapped_column(Enum(EstadoCita), default=EstadoCita.CONFIRMADA, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)

    caso: Mapped["Caso"] = relationship(back_populates="cita")
    paciente: Mapped["Paciente"] = relationship(back_populates="citas")


class RegistroBienestar(Base):
    __tablename__ = "wellness_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    user_message: Mapped[str] = mapped_column(Text, nullable=False)
    ai_response: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(80), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)


class MensajeConversacion(Base):
    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    # opcional: mensaje asociado a un caso
    case_id: Mapped[int | None] = mapped_column(ForeignKey("cases.id"), nullable=True)
    sender: Mapped[str] = mapped_column(String(30), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=ahora_utc, nullable=False)
