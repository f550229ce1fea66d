from __future__ import annotations

from fastapi import status


class ErrorDominio(ValueError):
    """
    Regla de negocio violada. Cada subclase lleva el status HTTP y el mensaje
    legible que la API devuelve tal cual en el campo `message`.
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    mensaje: str = "Solicitud inválida"

    def __init__(self, mensaje: str | None = None) -> None:
        self.mensaje = mensaje or self.mensaje
        super().__init__(self.mensaje)


class CampoFaltante(ErrorDominio):
    mensaje = "Campos incompletos"


class NoEncontrado(ErrorDominio):
    status_code = status.HTTP_404_NOT_FOUND
    mensaje = "Paciente no encontrado"


class CredencialesInvalidas(ErrorDominio):
    status_code = status.HTTP_401_UNAUTHORIZED
    mensaje = "Credenciales inválidas"


class YaExiste(ErrorDominio):
    status_code = status.HTTP_409_CONFLICT
    mensaje = "El registro ya existe"


class SinCodigoActivo(ErrorDominio):
    mensaje = "No hay código activo para este paciente"


class CodigoIncorrecto(ErrorDominio):
    mensaje = "Código incorrecto"


class CodigoExpirado(ErrorDominio):
    mensaje = "El código ha expirado"


class SinMedicoDisponible(ErrorDominio):
    mensaje = "No existe médico para esa especialidad"
