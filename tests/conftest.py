"""
Fixtures compartidas: BD SQLite temporal, correo falso y cliente HTTP.
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from medisense.api_main import create_app
from medisense.auth_service import registrar_medico
from medisense.config import Config
from medisense.db import Database
from medisense.services import DatosPaciente, crear_paciente

# instante fijo para los casos con reloj inyectado
T0 = datetime(2025, 1, 1, 9, 0, 0)


class CorreoFalso:
    """Registra los envíos en memoria en lugar de usar SMTP."""

    def __init__(self, resultado: bool = True) -> None:
        self.resultado = resultado
        self.enviados: list[tuple[str | None, str]] = []

    def enviar_codigo(self, destinatario, codigo):
        self.enviados.append((destinatario, codigo))
        return self.resultado

    @property
    def ultimo_codigo(self) -> str:
        return self.enviados[-1][1]


@pytest.fixture
def config(tmp_path):
    return Config(
        database_url=f"sqlite:///{tmp_path / 'medisense_test.sqlite'}",
        jwt_secret="test-secret",
        jwt_expire_minutes=600,
        code_ttl_seconds=60,
    )


@pytest.fixture
def db(config):
    database = Database(config.database_url)
    database.init_db()
    yield database
    database.dispose()


@pytest.fixture
def correo():
    return CorreoFalso()


@pytest.fixture
def app(config, db, correo):
    return create_app(config=config, db=db, correo=correo)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def medico_cardio(db):
    return registrar_medico(db, "Dr. X", "drx@medisense.local", "clave-segura", "Cardiología")


@pytest.fixture
def medico_general(db):
    return registrar_medico(db, "Dra. Y", "dray@medisense.local", "clave-segura", "Medicina General")


@pytest.fixture
def paciente(db):
    return crear_paciente(
        db,
        DatosPaciente(
            dni="87654321",
            nombres="Rosa",
            apellidos="Huamán",
            whatsapp="+51999888777",
            email="rosa@example.com",
        ),
    )


@pytest.fixture
def auth_headers(client, medico_cardio):
    r = client.post("/api/auth/login", json={"email": "drx@medisense.local", "password": "clave-segura"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}
