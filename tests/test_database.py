"""Engine option selection per database backend."""

from src.config import settings
from src.infrastructure.database import engine_options


def test_postgres_gets_pool_settings():
    options = engine_options("postgresql+asyncpg://u:p@db:5432/dispatch")
    assert options["pool_size"] == settings.database_pool_size
    assert options["max_overflow"] == settings.database_max_overflow
    assert options["pool_pre_ping"] is True


def test_sqlite_uses_driver_defaults():
    options = engine_options("sqlite+aiosqlite://")
    assert options == {"echo": settings.database_echo}
