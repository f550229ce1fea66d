"""
CLI de operación sobre una BD temporal.
"""
import pytest

from medisense.cli import main


@pytest.fixture(autouse=True)
def bd_temporal(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.sqlite'}")
    monkeypatch.delenv("SMTP_HOST", raising=False)


def test_seed_es_idempotente(capsys):
    assert main(["seed", "--password", "demo"]) == 0
    assert "2 médico(s) nuevo(s)" in capsys.readouterr().out
    assert main(["seed", "--password", "demo"]) == 0
    assert "0 médico(s) nuevo(s)" in capsys.readouterr().out

    assert main(["list", "doctors"]) == 0
    out = capsys.readouterr().out
    assert "Cardiología" in out
    assert "Medicina General" in out


def test_alta_de_paciente_y_codigo(capsys):
    args = ["add-patient", "--dni", "87654321", "--nombres", "Rosa", "--apellidos", "Huamán"]
    assert main(args) == 0
    assert main(args) == 0
    capsys.readouterr()

    assert main(["list", "patients"]) == 0
    assert capsys.readouterr().out.count("87654321") == 1

    # sin SMTP ni email el código se emite igual
    assert main(["send-code", "--dni", "87654321"]) == 0
    assert "Código enviado" in capsys.readouterr().out


def test_error_de_dominio_devuelve_1(capsys):
    assert main(["send-code", "--dni", "00000000"]) == 1
    assert "Paciente no encontrado" in capsys.readouterr().out
