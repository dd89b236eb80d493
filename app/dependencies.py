# app/dependencies.py

from typing import Generator, Optional
from fastapi import Depends
from sqlalchemy.orm import Session
from app.core.exceptions import AuthError
from app.core.security import oauth2_scheme, verify_access_token
from app.models.user import User
from app.database import SessionLocal
from app.crud.user import get_user

def get_db() -> Generator[Session, None, None]:
    """
    Создает и возвращает сессию базы данных, гарантирует закрытие после использования.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Декодирует JWT-токен, получает пользователя из базы, если токен валиден.
    """
    if not token:
        raise AuthError("Not authorized, no token", error="missing_token")
    payload = verify_access_token(token)
    if payload is None:
        raise AuthError("Not authorized, token failed", error="invalid_token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthError("Not authorized, token failed", error="invalid_token")
    user = get_user(db, user_id)
    if user is None:
        raise AuthError("Not authorized, user not found", error="invalid_token")
    return user

def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Проверяет, что пользователь активен.
    """
    if not current_user.is_active:
        raise AuthError("Inactive user", error="inactive_user")
    return current_user
