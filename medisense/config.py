from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# BD SQLite de desarrollo en la raíz del proyecto (junto a streamlit_app.py)
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "medisense.sqlite"


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _list_env(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(o.strip() for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class Config:
    """
    Configuración del proceso, leída una sola vez de variables de entorno (.env incluido).
    En producción: JWT_SECRET y DATABASE_URL deben definirse siempre.
    """
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    sql_echo: bool = False

    jwt_secret: str = "CHANGE_ME_DEV_SECRET"
    jwt_expire_minutes: int = 600
    code_ttl_seconds: int = 60

    allowed_origins: tuple[str, ...] = field(default_factory=lambda: ("http://localhost:5173",))

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    mail_from: str = "no-reply@medisense.ai"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            database_url=os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
            sql_echo=_bool_env("SQL_ECHO", False),
            jwt_secret=os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET"),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", "600")),
            code_ttl_seconds=int(os.getenv("CODE_TTL_SECONDS", "60")),
            allowed_origins=_list_env("ALLOWED_ORIGINS", "http://localhost:5173"),
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_username=os.getenv("SMTP_USERNAME") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            smtp_use_tls=_bool_env("SMTP_USE_TLS", True),
            mail_from=os.getenv("MAIL_FROM", "no-reply@medisense.ai"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
