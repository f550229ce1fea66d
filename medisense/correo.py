from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from medisense.config import Config

logger = logging.getLogger(__name__)

ASUNTO_CODIGO = "Código de verificación - MediSense AI"

_HTML_CODIGO = """
<div style="font-family: Arial; padding: 15px;">
  <h2 style="color:#0078ff;">MediSense AI</h2>
  <p>Tu código de verificación es:</p>
  <h1 style="background:#f0f4ff;padding:10px;border-radius:8px;text-align:center;">
    {codigo}
  </h1>
  <p>Este código expira en <b>{vigencia}</b>.</p>
</div>
"""


def _vigencia_legible(segundos: int) -> str:
    if segundos % 60 == 0:
        minutos = segundos // 60
        return "1 minuto" if minutos == 1 else f"{minutos} minutos"
    return f"{segundos} segundos"


class CorreoVerificacion:
    """
    Envío del código de verificación por SMTP.
    Nunca lanza: un fallo de entrega se registra en el log y el código sigue siendo válido.
    """

    def __init__(self, config: Config) -> None:
        self.config = config

    @property
    def configurado(self) -> bool:
        return bool(self.config.smtp_host)

    def construir_mensaje(self, destinatario: str, codigo: str) -> MIMEMultipart:
        vigencia = _vigencia_legible(self.config.code_ttl_seconds)
        msg = MIMEMultipart("alternative")
        msg["From"] = self.config.mail_from
        msg["To"] = destinatario
        msg["Subject"] = ASUNTO_CODIGO
        msg.attach(
            MIMEText(f"Tu código de verificación es: {codigo}. Este código expira en {vigencia}.", "plain", "utf-8")
        )
        msg.attach(MIMEText(_HTML_CODIGO.format(codigo=codigo, vigencia=vigencia), "html", "utf-8"))
        return msg

    def enviar_codigo(self, destinatario: str | None, codigo: str) -> bool:
        if not destinatario:
            logger.warning("Paciente sin email registrado: código no enviado")
            return False
        if not self.configurado:
            logger.warning("SMTP_HOST no configurado. No se enviarán correos reales.")
            return False

        try:
            msg = self.construir_mensaje(destinatario, codigo)
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=10) as server:
                if self.config.smtp_use_tls:
                    server.starttls()
                if self.config.smtp_username:
                    server.login(self.config.smtp_username, self.config.smtp_password or "")
                server.send_message(msg)
        except Exception as e:
            # cabeceras inválidas, AUTH con caracteres no ASCII, transporte...
            logger.error(f"Error al enviar correo a {destinatario!r}: {e}")
            return False

        logger.info(f"Email enviado correctamente a: {destinatario}")
        return True
