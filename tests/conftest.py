import os
import tempfile

_tmpdir = tempfile.mkdtemp(prefix="ledgerchat-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmpdir, "test.db")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_FILE"] = ""
os.environ["CHAT_IDENTITY"] = "claimed"
os.environ["MQTT_ENABLED"] = "0"

import pytest
from fastapi.testclient import TestClient

from ledgerchat import database
from ledgerchat.main import app
from ledgerchat.routes.chat import chat_protocol


@pytest.fixture(autouse=True)
def fresh_state():
    database.Base.metadata.drop_all(bind=database.engine)
    database.Base.metadata.create_all(bind=database.engine)
    chat_protocol.sessions.reset()
    chat_protocol.reporter.clear()
    yield


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register_and_login(client):
    def _register_and_login(username, password="secret", email=None):
        client.post("/register", data={"username": username, "email": email or f"{username}@example.com", "password": password})
        return client.post("/login", data={"username": username, "password": password})
    return _register_and_login
