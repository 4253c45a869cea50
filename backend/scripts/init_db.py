"""
Initialize database and run migrations. Run from backend dir: python -m scripts.init_db
"""
import os

from alembic.config import Config
from alembic import command

from yogabook.core.config import settings

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def init_db():
    """Run all migrations against the configured database."""
    alembic_cfg = Config(os.path.join(BACKEND_DIR, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(BACKEND_DIR, "alembic"))

    print("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    print(f"Database initialized and migrations applied at {settings.DATABASE_URL}")


if __name__ == "__main__":
    init_db()
