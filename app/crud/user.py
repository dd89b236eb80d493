#app/crud/user.py
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models.user import User
from app.core.exceptions import PersistenceError, UserValidationError
from app.core.security import hash_password, verify_password

import logging

logger = logging.getLogger("TaskFlow.Users")

def create_user(db: Session, data: dict) -> User:
    """
    Регистрирует пользователя. Email уникален (без учёта регистра).
    """
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not name or not email or not password:
        raise UserValidationError("All fields are required", error="missing_fields")

    if get_user_by_email(db, email):
        raise UserValidationError("User already exists", error="duplicate_email")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        is_active=data.get("is_active", True),
    )
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
        logger.info(f"User registered: {user.email}")
        return user
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Integrity error while registering user: {e}")
        raise UserValidationError("User already exists", error="duplicate_email")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to register user: {e}")
        raise PersistenceError("Database error while registering user.", error=str(e))

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == (email or "").strip().lower()).first()

def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """
    Возвращает пользователя, если email/пароль верны, иначе None.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user
