from __future__ import annotations

import os
import sys
from pathlib import Path

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import text
from sqlmodel import SQLModel

from slotcast.db import tables  # noqa: F401  registers every table on SQLModel.metadata
from slotcast.db.session import engine


def tables_to_reset() -> list[str]:
    return [
        "badges",
        "leaderboard_entries",
        "leaderboard_archives",
        "user_stats",
        "predictions",
        "alembic_version",
    ]


def _find_alembic_dir() -> Path | None:
    """Locate the Alembic migrations directory.

    Checks ``ALEMBIC_DIR`` first, then the repo-root ``alembic/`` next to the
    package. Returns ``None`` when neither exists (e.g. a wheel install), in
    which case callers fall back to ``SQLModel.metadata.create_all()``.
    """
    def _is_valid(p: Path) -> bool:
        return p.is_dir() and (p / "env.py").exists() and (p / "versions").is_dir()

    env_dir = os.getenv("ALEMBIC_DIR")
    if env_dir and _is_valid(Path(env_dir)):
        return Path(env_dir)

    repo_dir = Path(__file__).resolve().parent.parent.parent / "alembic"
    if _is_valid(repo_dir):
        return repo_dir
    return None


def _run_alembic_upgrade(alembic_dir: Path) -> None:
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(alembic_dir))
    alembic_cfg.set_main_option("sqlalchemy.url", str(engine.url))
    command.upgrade(alembic_cfg, "head")


def migrate() -> None:
    """Bring the schema up to date. Safe to run on every boot; never drops data."""
    alembic_dir = _find_alembic_dir()
    if alembic_dir is not None and engine.dialect.name == "postgresql":
        print(f"➡️  Running Alembic migrations from {alembic_dir} ...")
        _run_alembic_upgrade(alembic_dir)
    else:
        print("➡️  Using SQLModel create_all ...")
        SQLModel.metadata.create_all(engine)
    print("✅ Database migration complete.")


def reset_db() -> None:
    """Drop all tables and recreate from scratch. Destroys all data."""
    print("⚠️  Dropping all tables...")
    with engine.begin() as conn:
        for table in tables_to_reset():
            conn.execute(text(f"DROP TABLE IF EXISTS {table} CASCADE"))
    migrate()


def auto_migrate() -> None:
    """Create the schema on first boot, apply pending migrations afterwards."""
    inspector = sa_inspect(engine)
    if not inspector.has_table("predictions") or inspector.has_table("alembic_version"):
        migrate()


if __name__ == "__main__":
    if "--reset" in sys.argv:
        reset_db()
    else:
        migrate()
    sys.exit(0)
