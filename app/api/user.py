#app/api/user.py
from fastapi import APIRouter, Depends

from app.dependencies import get_current_active_user
from app.models.user import User as UserModel
from app.schemas.response import UserResponse
from app.schemas.user import UserRead

router = APIRouter(prefix="/api/users", tags=["Users"])

@router.get("/me", response_model=UserResponse)
def read_me(current_user: UserModel = Depends(get_current_active_user)):
    """
    Текущий пользователь (без хэша пароля).
    """
    return UserResponse(user=UserRead.model_validate(current_user))
