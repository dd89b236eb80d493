#app/models/user.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, func
)
from app.models.base import Base

class User(Base):
    """
    User — аккаунт пользователя (имя, email, хэш пароля, soft-активация).
    """
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)
    name: str = Column(String(128), nullable=False, doc="Имя")
    email: str = Column(String(255), unique=True, nullable=False, index=True, doc="Email")
    password_hash: str = Column(String(128), nullable=False, doc="Хэш пароля (никогда не хранить сырой пароль!)")
    is_active: bool = Column(Boolean, default=True, nullable=False, doc="Аккаунт активен")
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, doc="Дата создания")
    updated_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, doc="Дата обновления")

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', email='{self.email}')>"
