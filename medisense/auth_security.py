from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def token_medico(
    medico_id: int,
    specialty: str,
    secret: str,
    expire_minutes: int,
    ahora: datetime | None = None,
) -> str:
    """
    Token de sesión del médico.
    Claims: sub (id como string), userId, specialty, iat, exp (segundos UTC).
    """
    ahora = ahora or datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": str(medico_id),
        "userId": medico_id,
        "specialty": specialty,
        "iat": int(ahora.timestamp()),
        "exp": int((ahora + timedelta(minutes=expire_minutes)).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALG)


def decode_token(token: str, secret: str) -> dict[str, Any]:
    return jwt.decode(token, secret, algorithms=[JWT_ALG])


def medico_id_de_token(token: str, secret: str) -> int | None:
    """Id del médico si el token es auténtico y vigente; None en cualquier otro caso."""
    try:
        sub = decode_token(token, secret).get("sub")
    except JWTError:
        return None
    if not isinstance(sub, str) or not sub.isdigit():
        return None
    return int(sub)
