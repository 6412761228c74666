"""Shared test fixtures for the Thing System test suite.

All tests use a throwaway SQLite database file. Each test gets a clean
``things`` table, and every test that needs the system templates gets its
own copy in a temporary directory so it can edit them freely.

Restarts never terminate the test process: the loader and the app are
built with a restarter that only records the reason.
"""

import os
import shutil
import tempfile

# Use a temporary database and quiet defaults before any package imports.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="thingsystem-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TEST_DB_DIR, "test.db")
os.environ["LOG_FORMAT"] = "text"
os.environ["WATCH_TEMPLATES"] = "false"
os.environ["SEED_EXAMPLES"] = "false"

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import text

from thingsystem.api.things import get_store, router as things_router
from thingsystem.core.config import DEFAULT_TEMPLATES_DIR
from thingsystem.database import SessionLocal, init_db
from thingsystem.main import create_app
from thingsystem.services.capabilities import RouteRegistrar, SystemCapabilities
from thingsystem.services.content_store import ContentStore
from thingsystem.services.self_hosting import SelfHostingLoader
from thingsystem.services.templates import TemplateSources


@pytest.fixture(scope="session", autouse=True)
def _create_tables():
    init_db()
    yield
    shutil.rmtree(_TEST_DB_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def _clean_tables():
    """Delete every Thing before each test.

    Runs before the test (not after) so test failures leave data
    available for debugging.
    """
    db = SessionLocal()
    try:
        db.execute(text("DELETE FROM things"))
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def store(db):
    return ContentStore(db)


@pytest.fixture()
def templates_dir(tmp_path):
    """A private, editable copy of the packaged system templates."""
    target = tmp_path / "system"
    shutil.copytree(DEFAULT_TEMPLATES_DIR, target)
    return target


@pytest.fixture()
def restarts():
    """Reasons passed to the restarter, in call order."""
    return []


@pytest.fixture()
def host_app():
    """Bare FastAPI app that the server fragment registers its routes on."""
    return FastAPI()


@pytest.fixture()
def make_loader(templates_dir, restarts, host_app):
    """Factory for loaders over the same templates, store and restart log.

    Each call is a fresh "process": a new loader in COLD_START.
    """

    def _make() -> SelfHostingLoader:
        capabilities = SystemCapabilities(
            get_store=get_store, routes=RouteRegistrar(host_app), things_router=things_router,
        )
        return SelfHostingLoader(
            TemplateSources(templates_dir),
            capabilities,
            SessionLocal,
            restarts.append,
        )

    return _make


@pytest.fixture()
def loader(make_loader):
    return make_loader()


@pytest.fixture()
def app(templates_dir, restarts):
    return create_app(
        restarter=restarts.append,
        templates_dir=templates_dir,
        seed_examples=False,
        watch_templates=False,
    )


@pytest.fixture()
def client(app):
    """TestClient running the app's lifespan (boot of the system Thing)."""
    with TestClient(app) as c:
        yield c


def make_components(**overrides) -> dict:
    """Factory for full component bundles (wire spelling)."""
    components = {
        "html": "<p>Hello</p>",
        "css": "p { color: red; }",
        "clientJs": "console.log('hello');",
        "serverJs": "",
    }
    components.update(overrides)
    return components


def append_to_template(templates_dir, file_name: str, extra: str = "\n") -> None:
    """Change one system template file on disk."""
    path = templates_dir / file_name
    path.write_text(path.read_text(encoding="utf-8") + extra, encoding="utf-8")
