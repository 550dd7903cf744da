"""Tests for connection configuration."""

from ksmbot.config import DatabaseConfig, load_database_config


def test_url_from_parts():
    cfg = DatabaseConfig(
        account="bot",
        password="p@ss/word",
        host="db.internal",
        port=5432,
        name="ksm",
    )

    url = cfg.url
    assert url.drivername == "postgresql+asyncpg"
    assert url.username == "bot"
    assert url.password == "p@ss/word"
    assert url.host == "db.internal"
    assert url.port == 5432
    assert url.database == "ksm"


def test_url_override_wins():
    cfg = DatabaseConfig(host="db.internal", url_override="sqlite+aiosqlite:///x.db")
    assert cfg.url.drivername == "sqlite+aiosqlite"
    assert cfg.url.database == "x.db"


def test_defaults_to_local_sqlite():
    assert DatabaseConfig().url.get_backend_name() == "sqlite"


def test_load_from_environment(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_ACCOUNT", "bot")
    monkeypatch.setenv("DB_PASSWORD", "secret")
    monkeypatch.setenv("DB_HOST", "db.example.org")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_NAME", "ksm_bot")
    monkeypatch.setenv("ECHO_SQL", "true")

    cfg = load_database_config()

    assert cfg.port == 6543
    assert cfg.echo is True
    assert cfg.url.host == "db.example.org"
    assert cfg.url.database == "ksm_bot"


def test_load_without_environment(monkeypatch):
    for name in ("DATABASE_URL", "DB_HOST", "DB_PORT", "ECHO_SQL"):
        monkeypatch.delenv(name, raising=False)

    cfg = load_database_config()

    assert cfg.port is None
    assert cfg.echo is False
    assert cfg.url.get_backend_name() == "sqlite"
