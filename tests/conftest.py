import importlib
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from alembic import command
from alembic.config import Config

os.environ["SECRET_KEY"] = "test-secret"
os.environ["POS_API_BASE_URL"] = "https://pos.example.test"
os.environ["POS_API_BEARER_TOKEN"] = "pos-token"
os.environ["DRAFT_LOOKUP_DELAY_SECONDS"] = "0"


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url

    import app.cuadraturas.core.config as config
    import app.cuadraturas.db.session as session
    import app.main as main

    importlib.reload(config)
    importlib.reload(session)
    importlib.reload(main)

    return main.create_app(), session


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config("alembic.ini")
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


@pytest.fixture()
def client(tmp_path: Path):
    database_url = f"sqlite+pysqlite:///{tmp_path / 'test.db'}"

    _run_migrations(database_url)
    app, session = _setup_app(database_url)

    with TestClient(app) as client:
        yield client

    session.engine.dispose()


@pytest.fixture()
def db_session(client):
    from app.cuadraturas.db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
