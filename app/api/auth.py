#app/api/auth.py
from datetime import timedelta
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.exceptions import AuthError
from app.core.security import create_access_token
from app.core.settings import settings
from app.crud.user import authenticate_user, create_user
from app.dependencies import get_db
from app.schemas.auth import LoginRequest
from app.schemas.response import AuthResponse
from app.schemas.user import UserCreate, UserRead

router = APIRouter(prefix="/api/auth", tags=["Auth"])
logger = logging.getLogger("TaskFlow.Auth")

ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

def _auth_response(user) -> AuthResponse:
    token, _ = create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return AuthResponse(
        user=UserRead.model_validate(user),
        token=token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(data: UserCreate, db: Session = Depends(get_db)):
    """
    Регистрация: name + email + password, сразу выдаёт токен.
    """
    user = create_user(db, data.model_dump())
    return _auth_response(user)

@router.post("/login", response_model=AuthResponse, status_code=status.HTTP_200_OK)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """
    Логин по email + password.
    """
    user = authenticate_user(db, data.email, data.password)
    if not user or not user.is_active:
        logger.info(f"Failed login for {data.email}")
        raise AuthError("Invalid credentials", error="invalid_credentials")
    return _auth_response(user)
