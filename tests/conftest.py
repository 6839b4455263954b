import pytest
from fastapi.testclient import TestClient

from chatsync.database import Database
from main import create_app


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'chatsync.db'}")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def client(database):
    with TestClient(create_app(database)) as c:
        yield c
