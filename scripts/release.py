"""
Release phase: migrate the schema to head, then seed the first admin.

Reads the same environment as the app (app.crm.config), so the release step
refuses exactly the configurations create_app() would refuse.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.config import Settings, load_settings  # noqa: E402


def check_settings(settings: Settings) -> None:
    if settings.env.lower() not in ("prod", "production"):
        return
    if settings.database_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production; set DATABASE_URL to Postgres.")
    if settings.secret_key in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set before releasing to production.")


def migrate(database_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(cfg, "head")


def run_release() -> None:
    settings = load_settings()
    check_settings(settings)

    print(f"CRM release: env={settings.env} migrating to head...", flush=True)
    migrate(settings.database_url)

    from scripts import init_db

    init_db.seed_only(database_url=settings.database_url)
    print("CRM release done.", flush=True)


if __name__ == "__main__":
    run_release()
