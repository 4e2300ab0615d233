import pytest

from app import create_app
from models import db
from models.user import User, ROLE_STUDENT
from security.password import hash_password

TEST_PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "test.db"),
        "JWT_SECRET": "test-secret",
        "BCRYPT_ROUNDS": 4,
        "AUDIT_ASYNC": False,
        "THROTTLE_MAX_REQUESTS": 1000,
        "SMTP_HOST": None,
        "RESET_TOKEN_DEV_FALLBACK": False,
    })
    with app.app_context():
        db.create_all()

    yield app

    app.extensions["audit"].stop()
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def make_user(app):
    """Creates a user in its own app context and returns the id."""
    counter = {"n": 0}

    def _make(email=None, password=TEST_PASSWORD, role=ROLE_STUDENT, **fields):
        counter["n"] += 1
        n = counter["n"]
        with app.app_context():
            user = User(
                username=fields.pop("username", f"user_{n}"),
                email=email or f"user{n}@example.com",
                password_hash=hash_password(password),
                name=fields.pop("name", f"User {n}"),
                role=role,
                **fields,
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


@pytest.fixture
def login(client):
    def _login(email, password=TEST_PASSWORD):
        return client.post("/api/auth/login", json={"email": email, "password": password})

    return _login
