#!/usr/bin/env python3
"""
Gestión del esquema de Mostrador con Alembic.

Uso:
    python migrate.py upgrade                 # aplica hasta head
    python migrate.py downgrade --to -1       # revierte una revisión
    python migrate.py create "agrega tabla"   # autogenera una revisión nueva
    python migrate.py current                 # revisión aplicada en la base
    python migrate.py stamp head              # marca la base sin ejecutar DDL

La URL de conexión sale de mostrador.core.config (DATABASE_URL o POSTGRES_*).
"""
import argparse
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).parent
sys.path.insert(0, str(ROOT_DIR))

from alembic import command
from alembic.config import Config
from mostrador.core.config import settings


def alembic_config() -> Config:
    cfg = Config(str(ROOT_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT_DIR / "migrations"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return cfg


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migraciones de base de datos de Mostrador")
    sub = parser.add_subparsers(dest="action", required=True)

    create = sub.add_parser("create", help="Autogenerar una revisión desde los modelos")
    create.add_argument("message")

    upgrade = sub.add_parser("upgrade", help="Aplicar revisiones pendientes")
    upgrade.add_argument("--to", default="head", help="Revisión destino (default: head)")

    downgrade = sub.add_parser("downgrade", help="Revertir revisiones")
    downgrade.add_argument("--to", default="-1", help="Revisión destino (default: -1)")

    sub.add_parser("current", help="Mostrar la revisión aplicada")

    stamp = sub.add_parser("stamp", help="Registrar una revisión sin ejecutarla")
    stamp.add_argument("revision")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    cfg = alembic_config()

    if args.action == "create":
        command.revision(cfg, autogenerate=True, message=args.message)
        print(f"Revisión creada: {args.message}")
    elif args.action == "upgrade":
        command.upgrade(cfg, args.to)
        print(f"Esquema actualizado a {args.to}")
    elif args.action == "downgrade":
        command.downgrade(cfg, args.to)
        print(f"Esquema revertido a {args.to}")
    elif args.action == "current":
        command.current(cfg, verbose=True)
    elif args.action == "stamp":
        command.stamp(cfg, args.revision)
        print(f"Base marcada en {args.revision}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
