"""
Shared pytest fixtures.

Every test gets its own SQLite file and runtime directories under tmp_path.
Application tests run the full app (lifespan included) through TestClient.
"""

from pathlib import Path
from typing import Callable, Dict, Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from hdm_boot.config import Settings
from hdm_boot.database import Database
from hdm_boot.main import create_app
from hdm_boot.models.user import User
from hdm_boot.repositories.user_repo import UserRepository
from hdm_boot.services.password import PasswordHasher
from hdm_boot.services.user_service import UserService


TEST_JWT_SECRET = "test-secret-key-do-not-use-in-production-0123456789"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPass123"
USER_PASSWORD = "UserPass123"


# ============================================================================
# SETTINGS & STORAGE
# ============================================================================


def build_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "app_env": "testing",
        "jwt_secret": TEST_JWT_SECRET,
        "database_url": f"sqlite:///{tmp_path / 'app.db'}",
        "password_bcrypt_rounds": 4,
        "var_dir": tmp_path / "var",
        "content_dir": tmp_path / "content",
        "docs_dir": tmp_path / "docs",
        "log_format": "text",
        "log_level": "WARNING",
        "enabled_modules": ["Home", "Blog", "Docs"],
        "admin_email": ADMIN_EMAIL,
        "admin_password": ADMIN_PASSWORD,
        "cors_enabled": False,
        # Keep the filesystem check independent of the machine's disk usage
        "health_disk_warning_percent": 100.0,
        "health_disk_critical_percent": 100.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return build_settings(tmp_path)


@pytest.fixture
def database(tmp_path: Path) -> Generator[Database, None, None]:
    """Standalone database with the schema created."""
    db = Database(f"sqlite:///{tmp_path / 'unit.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database: Database) -> Generator[Session, None, None]:
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    # Lowest bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def user_service(db_session: Session, hasher: PasswordHasher) -> UserService:
    return UserService(UserRepository(db_session), hasher)


# ============================================================================
# APPLICATION
# ============================================================================


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(app: FastAPI) -> Callable[..., User]:
    """Create a user directly in the application database."""

    def factory(
        email: str,
        password: str = USER_PASSWORD,
        role: str = "user",
        name: str = "Test User",
        status: str = "active",
    ) -> User:
        with app.state.database.session() as db:
            service = UserService(UserRepository(db), app.state.password_hasher)
            return service.create_user({
                "email": email,
                "name": name,
                "password": password,
                "role": role,
                "status": status,
            })

    return factory


@pytest.fixture
def login(client: TestClient) -> Callable[[str, str], Dict[str, str]]:
    """Log in through the API and return bearer headers."""

    def do_login(email: str, password: str = USER_PASSWORD) -> Dict[str, str]:
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['data']['token']}"}

    return do_login


@pytest.fixture
def admin_headers(login) -> Dict[str, str]:
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def regular_user(client: TestClient, make_user) -> User:
    return make_user("user@example.com", name="Regular User")


@pytest.fixture
def user_headers(regular_user: User, login) -> Dict[str, str]:
    return login(regular_user.email)


@pytest.fixture
def editor_headers(client: TestClient, make_user, login) -> Dict[str, str]:
    editor = make_user("editor@example.com", role="editor", name="Eddie Editor")
    return login(editor.email)
