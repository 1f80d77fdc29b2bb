"""
Release phase: migrate the schema to head, then optionally seed document types.

  python scripts/release.py [--tenant acme] [--revision head]

DATABASE_URL is required. Seeding runs when --tenant or SEED_TENANT_ID is given.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.doctrack.config import load_settings  # noqa: E402


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def run_release(*, tenant_id: str | None = None, revision: str = "head") -> list[str]:
    settings = load_settings()
    db_url = settings.database_url
    if not (os.environ.get("DATABASE_URL") or "").strip():
        raise RuntimeError("DATABASE_URL is required for a release.")
    if settings.env.lower() in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production.")

    from alembic import command

    print(f"Upgrading schema to {revision} (env={settings.env})", flush=True)
    command.upgrade(_alembic_config(db_url), revision)

    tenant = (tenant_id or os.environ.get("SEED_TENANT_ID") or "").strip()
    if not tenant:
        return []

    from scripts import init_db

    created = init_db.seed_only(database_url=db_url, tenant_id=tenant)
    print(f"Seeded tenant {tenant}: {', '.join(created) or 'nothing new'}", flush=True)
    return created


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed default document types.")
    parser.add_argument("--tenant", help="tenant to seed (defaults to SEED_TENANT_ID)")
    parser.add_argument("--revision", default="head")
    args = parser.parse_args(argv)
    run_release(tenant_id=args.tenant, revision=args.revision)


if __name__ == "__main__":
    main()
