"""
Caso + cita desde el triaje IA y registro de pacientes (find-or-create).
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from medisense.auth_service import registrar_medico
from medisense.errors import CampoFaltante, NoEncontrado, SinMedicoDisponible, YaExiste
from medisense.models import Caso, Cita, EstadoCita, Paciente
from medisense.services import (
    DatosPaciente,
    HallazgosClinicos,
    casos_del_medico_flat,
    citas_del_medico_flat,
    crear_caso_desde_ia,
    crear_paciente,
    normalizar_sintomas,
    obtener_o_crear,
    paciente_por_dni,
)

CITA = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)

NUEVO = DatosPaciente(dni="12345678", nombres="Juan", apellidos="Pérez", whatsapp="+51911222333", email="juan@example.com")


def contar(db, modelo) -> int:
    with db.session() as s:
        return s.scalar(select(func.count()).select_from(modelo))


def hallazgos(**kw) -> HallazgosClinicos:
    base = dict(
        conversation_summary="Dolor torácico al esfuerzo",
        symptoms="fever, cough",
        specialty="Cardiología",
        risk_level="ALTO",
        possible_diagnosis="Angina estable",
        recommended_treatment="Evaluación cardiológica",
        diagnosis_justification="Dolor opresivo que cede con reposo",
    )
    base.update(kw)
    return HallazgosClinicos(**base)


class TestNormalizarSintomas:
    def test_texto_separado_por_comas(self):
        assert normalizar_sintomas("fever, cough") == ["fever", "cough"]

    def test_lista_se_recorta(self):
        assert normalizar_sintomas([" fiebre ", "tos"]) == ["fiebre", "tos"]

    def test_vacios_y_nulos(self):
        assert normalizar_sintomas(None) == []
        assert normalizar_sintomas("fiebre,, ,tos") == ["fiebre", "tos"]


class TestCrearCasoDesdeIA:
    def test_escenario_paciente_nuevo(self, db, medico_cardio):
        res = crear_caso_desde_ia(db, NUEVO, hallazgos(), CITA)

        caso, cita, paciente = res["case"], res["appointment"], res["patient"]
        assert paciente["document_number"] == "12345678"
        assert paciente["full_name"] == "Juan Pérez"

        assert caso["status"] == "REGISTRADO"
        assert caso["estimated_price"] == 8.0
        assert caso["assigned_doctor_id"] == medico_cardio.id
        assert caso["patient_id"] == paciente["id"]
        assert caso["ai_symptoms"] == ["fever", "cough"]

        assert cita["status"] == "CONFIRMADA"
        assert cita["price"] == 8.0
        assert cita["doctor_id"] == medico_cardio.id
        assert cita["patient_id"] == paciente["id"]
        assert cita["case_id"] == caso["id"]
        assert cita["scheduled_date"] == "2025-01-01T10:00:00+00:00"

        assert contar(db, Paciente) == 1
        assert contar(db, Caso) == 1
        assert contar(db, Cita) == 1

    def test_sin_fecha_de_cita_no_crea_nada(self, db, medico_cardio):
        with pytest.raises(CampoFaltante) as exc:
            crear_caso_desde_ia(db, NUEVO, hallazgos(), None)
        assert "fecha y hora" in exc.value.mensaje
        assert contar(db, Paciente) == 0
        assert contar(db, Caso) == 0
        assert contar(db, Cita) == 0

    def test_sin_medico_para_la_especialidad(self, db, medico_cardio):
        with pytest.raises(SinMedicoDisponible):
            crear_caso_desde_ia(db, NUEVO, hallazgos(specialty="Dermatología"), CITA)
        assert contar(db, Caso) == 0
        assert contar(db, Cita) == 0
        # la transacción completa se revierte, incluido el alta del paciente
        assert contar(db, Paciente) == 0

    def test_especialidad_insensible_a_mayusculas_y_espacios(self, db, medico_cardio):
        res = crear_caso_desde_ia(db, NUEVO, hallazgos(specialty="  CARDIOLOGÍA "), CITA)
        assert res["case"]["assigned_doctor_id"] == medico_cardio.id
        assert res["case"]["specialty"] == "CARDIOLOGÍA"

    def test_especialidad_por_defecto(self, db, medico_cardio, medico_general):
        res = crear_caso_desde_ia(db, NUEVO, hallazgos(specialty=None), CITA)
        assert res["case"]["specialty"] == "Medicina General"
        assert res["appointment"]["doctor_id"] == medico_general.id

    def test_elige_el_primer_medico_activo(self, db, medico_cardio):
        registrar_medico(db, "Dr. Z", "drz@medisense.local", "clave", "cardiología")
        res = crear_caso_desde_ia(db, NUEVO, hallazgos(), CITA)
        assert res["case"]["assigned_doctor_id"] == medico_cardio.id

    def test_paciente_existente_se_reutiliza(self, db, medico_cardio, paciente):
        otro_nombre = DatosPaciente(dni="87654321", nombres="Otro", apellidos="Nombre")
        res = crear_caso_desde_ia(db, otro_nombre, hallazgos(), CITA)
        assert res["patient"]["id"] == paciente["id"]
        assert res["patient"]["full_name"] == "Rosa Huamán"
        assert contar(db, Paciente) == 1

    def test_sin_dni(self, db, medico_cardio):
        with pytest.raises(CampoFaltante):
            crear_caso_desde_ia(db, DatosPaciente(dni=None), hallazgos(), CITA)

    def test_sintomas_se_leen_como_lista(self, db, medico_cardio):
        crear_caso_desde_ia(db, NUEVO, hallazgos(symptoms="fever, cough"), CITA)
        casos = casos_del_medico_flat(db, medico_cardio.id)
        assert casos[0]["ai_symptoms"] == ["fever", "cough"]
        assert casos[0]["patient_name"] == "Juan Pérez"
        assert casos[0]["dni"] == "12345678"


class TestListadosDelMedico:
    def test_casos_mas_recientes_primero(self, db, medico_cardio):
        primero = crear_caso_desde_ia(db, NUEVO, hallazgos(), CITA)["case"]
        segundo = crear_caso_desde_ia(db, NUEVO, hallazgos(), CITA)["case"]
        ids = [c["id"] for c in casos_del_medico_flat(db, medico_cardio.id)]
        assert ids == [segundo["id"], primero["id"]]

    def test_citas_mas_proximas_primero(self, db, medico_cardio):
        tarde = crear_caso_desde_ia(db, NUEVO, hallazgos(), datetime(2025, 3, 1, 9, 0))["appointment"]
        pronto = crear_caso_desde_ia(db, NUEVO, hallazgos(), datetime(2025, 2, 1, 9, 0))["appointment"]
        citas = citas_del_medico_flat(db, medico_cardio.id)
        assert [a["id"] for a in citas] == [pronto["id"], tarde["id"]]
        assert all(a["status"] == EstadoCita.CONFIRMADA.value for a in citas)

    def test_solo_los_del_medico(self, db, medico_cardio, medico_general):
        crear_caso_desde_ia(db, NUEVO, hallazgos(), CITA)
        assert casos_del_medico_flat(db, medico_general.id) == []
        assert citas_del_medico_flat(db, medico_general.id) == []


class TestRegistroPacientes:
    def test_obtener_o_crear_es_idempotente(self, db):
        a = obtener_o_crear(db, NUEVO)
        b = obtener_o_crear(db, DatosPaciente(dni=" 12345678 "))
        assert a["id"] == b["id"]
        assert contar(db, Paciente) == 1

    def test_crear_requiere_nombres(self, db):
        with pytest.raises(CampoFaltante):
            obtener_o_crear(db, DatosPaciente(dni="11112222"))

    def test_crear_paciente_duplicado(self, db, paciente):
        with pytest.raises(YaExiste):
            crear_paciente(db, DatosPaciente(dni="87654321", nombres="Rosa", apellidos="Huamán"))

    def test_buscar_por_dni(self, db, paciente):
        assert paciente_por_dni(db, "87654321")["email"] == "rosa@example.com"
        with pytest.raises(NoEncontrado):
            paciente_por_dni(db, "00000000")
