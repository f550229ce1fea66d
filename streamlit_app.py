from __future__ import annotations

import base64
import json
import os
from datetime import datetime, timezone

import requests
import streamlit as st

st.set_page_config(page_title="MediSense AI - Médicos", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")



# JWT helpers (solo para la UI, sin verificar firma)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return {}
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return payload if isinstance(payload, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def jwt_is_expired(token: str) -> bool:
    p = jwt_payload(token)
    try:
        exp_int = int(p.get("exp"))
    except (TypeError, ValueError):
        return False

    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp_int - 5)



# Cliente HTTP (con JWT)

def _check(r: requests.Response) -> dict:
    if r.status_code == 401:
        raise PermissionError("401 No autorizado (token inválido/expirado o backend reiniciado).")
    if r.status_code >= 400:
        try:
            msg = r.json().get("message")
        except ValueError:
            msg = None
        raise RuntimeError(msg or f"Error HTTP {r.status_code}")
    return r.json()


def api_get(path: str, token: str | None = None) -> dict:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return _check(requests.get(f"{API_BASE}{path}", headers=headers, timeout=10))


def api_post(path: str, payload: dict, token: str | None = None) -> dict:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return _check(requests.post(f"{API_BASE}{path}", headers=headers, json=payload, timeout=10))


def api_login(email: str, password: str) -> dict:
    r = requests.post(f"{API_BASE}/api/auth/login", json={"email": email, "password": password}, timeout=10)
    r.raise_for_status()
    return r.json()


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("user", None)
    st.rerun()


def require_auth() -> str | None:
    token = st.session_state.get("token")
    if not token:
        st.warning("Sección reservada. Inicia sesión desde la barra lateral.")
        return None

    if jwt_is_expired(token):
        st.error("Sesión expirada. Cierra sesión y vuelve a ingresar.")
        return None

    return token



# Sidebar login

with st.sidebar:
    st.header("Acceso médico")

    if not st.session_state.get("token"):
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_pass")

        if st.button("Ingresar", key="login_btn"):
            try:
                res = api_login(email.strip().lower(), password)
                st.session_state["token"] = res["token"]
                st.session_state["user"] = res["user"]
                st.rerun()
            except requests.HTTPError:
                st.error("Credenciales inválidas.")
            except requests.RequestException as e:
                st.error(str(e))
    else:
        user = st.session_state.get("user") or {}
        st.write(f"Médico: **{user.get('name', '-')}**")
        st.caption(f"Especialidad: {user.get('specialty', '-')}")

        if st.button("Cerrar sesión", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# UI

st.title("MediSense AI - Panel del médico")

tab1, tab2, tab3, tab4 = st.tabs(["Casos", "Citas", "Conversaciones", "Pacientes"])


def _sesion_invalida(e: PermissionError) -> None:
    st.error(f"Sesión no válida: {e} Cierra sesión y vuelve a ingresar.")



# TAB 1 - Casos asignados

with tab1:
    st.subheader("Mis casos (más recientes primero)")

    token = require_auth()
    if token:
        try:
            casos = api_get("/api/cases", token=token)["data"]
            if not casos:
                st.info("No tienes casos asignados.")
            for c in casos:
                with st.expander(f"#{c['id']} | {c['patient_name']} (DNI {c['dni']}) | riesgo: {c['risk_level'] or '-'}"):
                    st.write(f"**Estado:** {c['status']} | **Especialidad:** {c['specialty']}")
                    st.write(f"**Resumen IA:** {c['ai_summary'] or '-'}")
                    st.write(f"**Síntomas:** {', '.join(c['ai_symptoms']) or '-'}")
                    st.write(f"**Diagnóstico posible:** {c['possible_diagnosis'] or '-'}")
                    st.write(f"**Tratamiento recomendado:** {c['recommended_treatment'] or '-'}")
                    st.write(f"**Justificación:** {c['diagnosis_justification'] or '-'}")
        except PermissionError as e:
            _sesion_invalida(e)
        except (RuntimeError, requests.RequestException) as e:
            st.error(f"Error casos: {e}")



# TAB 2 - Citas

with tab2:
    st.subheader("Mis citas (más próximas primero)")

    token = require_auth()
    if token:
        try:
            citas = api_get("/api/appointments", token=token)["data"]
            if not citas:
                st.info("No tienes citas.")
            for a in citas:
                st.write(
                    f"- **{a['scheduled_date']}** | {a['patient_name']} (DNI {a['dni']}) | "
                    f"{a['specialty']} | {a['status']} | S/ {a['price']:.2f}"
                )
        except PermissionError as e:
            _sesion_invalida(e)
        except (RuntimeError, requests.RequestException) as e:
            st.error(f"Error citas: {e}")



# TAB 3 - Historial de chat

with tab3:
    st.subheader("Historial de conversación por DNI")

    token = require_auth()
    if token:
        dni = st.text_input("DNI del paciente", key="conv_dni")
        if dni.strip():
            try:
                mensajes = api_get(f"/api/conversations/by-patient/{dni.strip()}", token=token)["data"]
                if not mensajes:
                    st.info("Sin mensajes registrados.")
                for m in mensajes:
                    st.write(f"`{m['created_at']}` **{m['sender']}**: {m['message']}")
            except PermissionError as e:
                _sesion_invalida(e)
            except (RuntimeError, requests.RequestException) as e:
                st.error(str(e))



# TAB 4 - Pacientes

with tab4:
    st.subheader("Registrar paciente")

    token = require_auth()
    if token:
        c1, c2 = st.columns(2)
        nombres = c1.text_input("Nombres", key="pac_nombres")
        apellidos = c2.text_input("Apellidos", key="pac_apellidos")
        dni_nuevo = c1.text_input("DNI", key="pac_dni")
        whatsapp = c2.text_input("WhatsApp (opcional)", key="pac_whatsapp")
        email = st.text_input("Email (opcional)", key="pac_email")

        if st.button("Crear paciente", key="pac_submit"):
            if not nombres.strip() or not apellidos.strip() or not dni_nuevo.strip():
                st.error("Nombres, apellidos y DNI son obligatorios.")
            else:
                try:
                    res = api_post(
                        "/api/patients",
                        {
                            "nombres": nombres.strip(),
                            "apellidos": apellidos.strip(),
                            "dni": dni_nuevo.strip(),
                            "whatsapp": whatsapp.strip() or None,
                            "email": email.strip() or None,
                        },
                        token=token,
                    )
                    st.success(f"{res['message']}: {res['data']['full_name']} (ID {res['data']['id']})")
                except PermissionError as e:
                    _sesion_invalida(e)
                except (RuntimeError, requests.RequestException) as e:
                    st.error(str(e))
