import pytest

import storage
from app import app as flask_app
from models import AuthUser, Role


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(
        TESTING=True,
        SQLITE_PATH=str(tmp_path / "sheltersync-test.db"),
        DATABASE_URL="",
        OPENAI_API_KEY=None,
        SHELTER_TIMEZONE="America/Chicago",
    )
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        storage.init_db()
        yield


@pytest.fixture
def staff_member(ctx):
    member = AuthUser(id="staff1", username="casey", pin="4321", role=Role.STAFF, name="Casey Staff")
    storage.save_staff(storage.get_staff() + [member])
    return member


def login_as(client, username="admin", pin="1234"):
    return client.post("/staff/login", data={"username": username, "pin": pin})
