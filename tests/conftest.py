import importlib
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from alembic import command
from alembic.config import Config

from tests.db_utils import create_test_database


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["SECRET_KEY"] = "test-secret"

    import app.zeus.core.config as config
    import app.zeus.db.session as session
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
def database_url(tmp_path: Path):
    database_url, cleanup = create_test_database(os.getenv("DATABASE_URL", ""), tmp_path)

    _run_migrations(database_url)
    yield database_url

    if cleanup:
        cleanup()


@pytest.fixture()
def app(database_url):
    app, session = _setup_app(database_url)
    yield app
    session.engine.dispose()


@pytest.fixture()
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def session_factory(app):
    from app.zeus.db.session import SessionLocal

    return SessionLocal


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def evaluator(app):
    return app.state.feature_evaluator


@pytest.fixture()
def administrator(app):
    return app.state.feature_administrator
