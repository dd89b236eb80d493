# app/database.py
import json

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from app.core.settings import settings

# SQLite нужен check_same_thread=False: FastAPI выполняет sync-роуты в threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}


def dump_json(value) -> str:
    # Без \uXXXX: фильтр по тегу в crud.task ищет по тексту JSON
    return json.dumps(value, ensure_ascii=False)


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
    json_serializer=dump_json,
)

SessionLocal = scoped_session(
    sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )
)

def init_db() -> None:
    """
    Создаёт таблицы для всех моделей (миграций в проекте нет).
    """
    import app.models  # noqa: F401  регистрирует модели в Base.metadata
    from app.models.base import Base

    Base.metadata.create_all(bind=engine)
