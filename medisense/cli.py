from __future__ import annotations

import argparse

from medisense.auth_service import registrar_medico
from medisense.config import Config, configure_logging
from medisense.correo import CorreoVerificacion
from medisense.db import Database
from medisense.errors import ErrorDominio
from medisense.seed import seed_base
from medisense.services import DatosPaciente, iso_utc, lista_medicos_flat, lista_pacientes_flat, obtener_o_crear
from medisense.verificacion import emitir_codigo, verificar_codigo


def cmd_init(args: argparse.Namespace, db: Database, config: Config) -> None:
    db.init_db()
    print("BD inicializada.")


def cmd_seed(args: argparse.Namespace, db: Database, config: Config) -> None:
    creados = seed_base(db, password=args.password)
    print(f"Seed completado: {creados} médico(s) nuevo(s).")


def cmd_create_doctor(args: argparse.Namespace, db: Database, config: Config) -> None:
    m = registrar_medico(db, args.name, args.email, args.password, args.specialty)
    print(f"Médico creado: {m.id} | {m.name} | {m.specialty}")


def cmd_list(args: argparse.Namespace, db: Database, config: Config) -> None:
    if args.entity == "doctors":
        for m in lista_medicos_flat(db):
            print(f"{m['id']} | {m['name']} | {m['email']} | {m['specialty']}")
    elif args.entity == "patients":
        for p in lista_pacientes_flat(db):
            print(f"{p['id']} | {p['document_number']} | {p['full_name']} | {p['email'] or '-'}")


def cmd_add_patient(args: argparse.Namespace, db: Database, config: Config) -> None:
    datos = DatosPaciente(
        dni=args.dni,
        nombres=args.nombres,
        apellidos=args.apellidos,
        whatsapp=args.whatsapp,
        email=args.email,
    )
    p = obtener_o_crear(db, datos)
    print(f"Paciente: {p['id']} | {p['document_number']} | {p['full_name']}")


def cmd_send_code(args: argparse.Namespace, db: Database, config: Config) -> None:
    emitido = emitir_codigo(db, CorreoVerificacion(config), args.dni, ttl_seconds=config.code_ttl_seconds)
    print(f"Código enviado. Expira: {iso_utc(emitido.expires_at)}")


def cmd_verify_code(args: argparse.Namespace, db: Database, config: Config) -> None:
    p = verificar_codigo(db, args.dni, args.code)
    print(f"Verificación exitosa: {p['full_name']} ({p['document_number']})")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="medisense", description="CLI MediSense (operación y soporte)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea las tablas")
    p_init.set_defaults(func=cmd_init)

    p_seed = sub.add_parser("seed", help="Carga médicos de demostración")
    p_seed.add_argument("--password", default="cambiar123", help="Password de los médicos demo")
    p_seed.set_defaults(func=cmd_seed)

    p_doc = sub.add_parser("create-doctor", help="Registra un médico")
    p_doc.add_argument("--name", required=True)
    p_doc.add_argument("--email", required=True)
    p_doc.add_argument("--password", required=True)
    p_doc.add_argument("--specialty", required=True)
    p_doc.set_defaults(func=cmd_create_doctor)

    p_list = sub.add_parser("list", help="Lista entidades")
    p_list.add_argument("entity", choices=["doctors", "patients"])
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Busca o crea un paciente por DNI")
    p_addp.add_argument("--dni", required=True)
    p_addp.add_argument("--nombres", required=True)
    p_addp.add_argument("--apellidos", required=True)
    p_addp.add_argument("--whatsapp", default=None)
    p_addp.add_argument("--email", default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_send = sub.add_parser("send-code", help="Emite un código de verificación para un DNI")
    p_send.add_argument("--dni", required=True)
    p_send.set_defaults(func=cmd_send_code)

    p_verify = sub.add_parser("verify-code", help="Verifica el código de un DNI")
    p_verify.add_argument("--dni", required=True)
    p_verify.add_argument("--code", required=True)
    p_verify.set_defaults(func=cmd_verify_code)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.from_env()
    configure_logging(config.log_level)
    db = Database(config.database_url, echo=config.sql_echo)
    db.init_db()  # garantiza tablas

    try:
        args.func(args, db, config)
    except ErrorDominio as e:
        print(f"Error: {e.mensaje}")
        return 1
    finally:
        db.dispose()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
