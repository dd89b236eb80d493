import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
import os
from datetime import timedelta
from typing import Generator, Any

# Переменные окружения должны быть заданы ДО импорта settings / app.main
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "testsecretkey"
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Регистрирует все модели в Base.metadata
import app.models
from app.models.base import Base

from app.main import app
from app.dependencies import get_db
from app.database import dump_json
from app.crud.user import create_user
from app.core import security

engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    json_serializer=dump_json,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Чистая схема на каждый тест: crud-функции коммитят сами.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """
    TestClient с подменённой зависимостью get_db.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_user(db: Session) -> Any:
    return create_user(db, {"name": "Test User", "email": "testuser@example.com", "password": "testpassword"})


@pytest.fixture(scope="function")
def other_user(db: Session) -> Any:
    return create_user(db, {"name": "Other User", "email": "other@example.com", "password": "otherpassword"})


def _token_headers(user: Any) -> dict[str, str]:
    token, _ = security.create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def user_token_headers(test_user: Any) -> dict[str, str]:
    return _token_headers(test_user)


@pytest.fixture(scope="function")
def other_user_token_headers(other_user: Any) -> dict[str, str]:
    return _token_headers(other_user)
