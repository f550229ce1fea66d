from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from medisense.auth_models import Medico
from medisense.auth_security import medico_id_de_token
from medisense.auth_service import get_medico_by_id, iniciar_sesion, registrar_medico
from medisense.config import Config, configure_logging
from medisense.correo import CorreoVerificacion
from medisense.db import Database
from medisense.errors import CampoFaltante, ErrorDominio, NoEncontrado
from medisense.services import (
    DatosPaciente,
    HallazgosClinicos,
    casos_del_medico_flat,
    citas_del_medico_flat,
    conversacion_por_dni_flat,
    crear_caso_desde_ia,
    crear_paciente,
    iso_utc,
    medico_flat,
    paciente_por_dni,
    registrar_bienestar,
    registrar_mensaje,
)
from medisense.verificacion import EnviadorCodigo, emitir_codigo, verificar_codigo

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>); sin auto_error para responder "Token faltante"
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

router = APIRouter(prefix="/api")



# Esquemas de entrada

class Entrada(BaseModel):
    # DNI y códigos llegan a veces como número desde la IA
    model_config = ConfigDict(coerce_numbers_to_str=True)


class RegisterIn(Entrada):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    specialty: str | None = None


class LoginIn(Entrada):
    email: str | None = None
    password: str | None = None


class PacienteIn(Entrada):
    nombres: str | None = None
    apellidos: str | None = None
    dni: str | None = None
    whatsapp: str | None = None
    email: str | None = None

    def a_datos(self) -> DatosPaciente:
        return DatosPaciente(
            dni=self.dni,
            nombres=self.nombres,
            apellidos=self.apellidos,
            whatsapp=self.whatsapp,
            email=self.email,
        )


class SendCodeIn(Entrada):
    dni: str | None = None


class VerifyCodeIn(Entrada):
    dni: str | None = None
    code: str | None = None


class CasoIaIn(Entrada):
    patient: PacienteIn | None = None
    conversation_summary: str | None = None
    symptoms: list[str] | str | None = None
    specialty: str | None = None
    risk_level: str | None = None
    possible_diagnosis: str | None = None
    recommended_treatment: str | None = None
    diagnosis_justification: str | None = None
    appointment_time: datetime | None = None


class WellnessIn(Entrada):
    patient: PacienteIn | None = None
    user_message: str | None = None
    ai_response: str | None = None
    category: str | None = None


class ConversationIn(Entrada):
    dni: str | None = None
    case_id: int | None = None
    sender: str | None = None
    message: str | None = None



# Dependencias

def get_db(request: Request) -> Database:
    return request.app.state.db


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_correo(request: Request) -> EnviadorCodigo:
    return request.app.state.correo


def _no_autorizado(detalle: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detalle,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: Database = Depends(get_db),
    config: Config = Depends(get_config),
) -> Medico:
    if not token:
        raise _no_autorizado("Token faltante")

    # protección extra: quita espacios / comillas accidentales
    token = token.strip().strip('"').strip("'")

    medico_id = medico_id_de_token(token, config.jwt_secret)
    if medico_id is None:
        raise _no_autorizado("Token inválido")

    m = get_medico_by_id(db, medico_id)
    if not m or not m.is_active:
        raise _no_autorizado("Token inválido")
    return m



# AUTH endpoints

@router.post("/users/create")
def api_registrar_medico(payload: RegisterIn, db: Database = Depends(get_db)) -> dict[str, Any]:
    m = registrar_medico(db, payload.name, payload.email, payload.password, payload.specialty)
    return {"message": "Usuario médico creado exitosamente", "user": medico_flat(m)}


@router.post("/auth/login")
def api_login(
    payload: LoginIn,
    db: Database = Depends(get_db),
    config: Config = Depends(get_config),
) -> dict[str, Any]:
    sesion = iniciar_sesion(db, payload.email, payload.password, config.jwt_secret, config.jwt_expire_minutes)
    return {
        "message": "Login exitoso",
        "user": medico_flat(sesion.medico),
        "token": sesion.token,
        "token_type": "bearer",
    }


@router.get("/me")
def api_me(user: Medico = Depends(get_current_user)) -> dict[str, Any]:
    return {"user": medico_flat(user)}



# PACIENTES y verificación

@router.post("/patients")
def api_crear_paciente(
    payload: PacienteIn,
    db: Database = Depends(get_db),
    user: Medico = Depends(get_current_user),
) -> dict[str, Any]:
    return {"message": "Paciente creado correctamente", "data": crear_paciente(db, payload.a_datos())}


@router.get("/patients/by-dni/{dni}")
def api_paciente_por_dni(dni: str, db: Database = Depends(get_db)) -> Any:
    try:
        paciente = paciente_por_dni(db, dni)
    except NoEncontrado as e:
        return JSONResponse(status_code=e.status_code, content={"exists": False, "message": e.mensaje})
    return {"exists": True, "patient": paciente}


@router.post("/patients/send-code")
def api_enviar_codigo(
    payload: SendCodeIn,
    db: Database = Depends(get_db),
    config: Config = Depends(get_config),
    correo: EnviadorCodigo = Depends(get_correo),
) -> dict[str, Any]:
    emitido = emitir_codigo(db, correo, payload.dni, ttl_seconds=config.code_ttl_seconds)
    return {
        "message": "Código de verificación enviado al correo registrado.",
        "expires_at": iso_utc(emitido.expires_at),
    }


@router.post("/patients/verify-code")
def api_verificar_codigo(payload: VerifyCodeIn, db: Database = Depends(get_db)) -> dict[str, Any]:
    paciente = verificar_codigo(db, payload.dni, payload.code)
    return {"message": "Verificación exitosa", "verified": True, "patient": paciente}



# CASOS y CITAS

@router.post("/cases/from-ia")
def api_caso_desde_ia(payload: CasoIaIn, db: Database = Depends(get_db)) -> dict[str, Any]:
    """
    Caso desde la IA (sin aprobación, cita obligatoria):
    - busca o crea el paciente
    - asigna el médico de la especialidad
    - crea caso REGISTRADO + cita CONFIRMADA
    """
    paciente = payload.patient.a_datos() if payload.patient else DatosPaciente(dni=None)
    hallazgos = HallazgosClinicos(
        conversation_summary=payload.conversation_summary,
        symptoms=payload.symptoms,
        specialty=payload.specialty,
        risk_level=payload.risk_level,
        possible_diagnosis=payload.possible_diagnosis,
        recommended_treatment=payload.recommended_treatment,
        diagnosis_justification=payload.diagnosis_justification,
    )
    creado = crear_caso_desde_ia(db, paciente, hallazgos, payload.appointment_time)
    return {
        "message": "Caso clínico registrado y cita confirmada.",
        "case": creado["case"],
        "appointment": creado["appointment"],
    }


@router.get("/cases")
def api_casos(db: Database = Depends(get_db), user: Medico = Depends(get_current_user)) -> dict[str, Any]:
    return {"data": casos_del_medico_flat(db, user.id)}


@router.get("/appointments")
def api_citas(db: Database = Depends(get_db), user: Medico = Depends(get_current_user)) -> dict[str, Any]:
    return {"data": citas_del_medico_flat(db, user.id)}



# HISTORIAL (bienestar y conversaciones)

@router.post("/wellness/log")
def api_log_bienestar(payload: WellnessIn, db: Database = Depends(get_db)) -> dict[str, Any]:
    if payload.patient is None:
        raise CampoFaltante("Datos incompletos")
    registro = registrar_bienestar(
        db,
        payload.patient.a_datos(),
        payload.user_message,
        payload.ai_response,
        payload.category,
    )
    return {"message": "Tip registrado", "data": registro}


@router.post("/conversations/log")
def api_log_conversacion(payload: ConversationIn, db: Database = Depends(get_db)) -> dict[str, Any]:
    mensaje = registrar_mensaje(db, payload.dni, payload.sender, payload.message, payload.case_id)
    return {"message": "Mensaje registrado", "data": mensaje}


@router.get("/conversations/by-patient/{dni}")
def api_conversacion_paciente(
    dni: str,
    db: Database = Depends(get_db),
    user: Medico = Depends(get_current_user),
) -> dict[str, Any]:
    return {"data": conversacion_por_dni_flat(db, dni)}



# Manejo de errores: siempre {"message": ...}, nunca el error crudo

async def error_dominio_handler(request: Request, exc: ErrorDominio) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.mensaje})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(loc) for loc in e["loc"]), "message": e["msg"]}
        for e in exc.errors()
    ]
    logger.warning(f"Validación fallida en {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Datos incompletos o inválidos", "details": errors},
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"Conflicto de unicidad en {request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"message": "El registro ya existe"})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Error no controlado en {request.method} {request.url.path}: {exc!s}", exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Error interno"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ErrorDominio, error_dominio_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)



# App factory

def create_app(
    config: Config | None = None,
    db: Database | None = None,
    correo: EnviadorCodigo | None = None,
) -> FastAPI:
    config = config or Config.from_env()
    configure_logging(config.log_level)

    db = db or Database(config.database_url, echo=config.sql_echo)
    correo = correo or CorreoVerificacion(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # crea tablas (idempotente)
        db.init_db()
        yield
        db.dispose()

    app = FastAPI(title="MediSense AI Backend", version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.db = db
    app.state.correo = correo

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_exception_handlers(app)

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "MediSense AI Backend ON"

    app.include_router(router)
    return app


app = create_app()
