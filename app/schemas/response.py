#app/schemas/response.py
from pydantic import BaseModel, Field
from typing import List, Optional

from app.schemas.task import TaskRead
from app.schemas.user import UserRead

class ErrorResponse(BaseModel):
    """
    ErrorResponse — стандартная структура для ошибки.
    """
    success: bool = Field(False, description="Всегда false для ошибок")
    message: str = Field(..., examples=["Task not found"], description="Сообщение об ошибке")
    error: Optional[str] = Field(None, examples=["invalid_status"], description="Код/детали ошибки")

class MessageResponse(BaseModel):
    """
    MessageResponse — простое сообщение для подтверждения действия.
    """
    success: bool = True
    message: str = Field(..., examples=["Task deleted successfully"], description="Текстовое сообщение")

class TaskResponse(BaseModel):
    success: bool = True
    task: TaskRead

class TaskListResponse(BaseModel):
    success: bool = True
    tasks: List[TaskRead]

class UserResponse(BaseModel):
    success: bool = True
    user: UserRead

class AuthResponse(BaseModel):
    """
    AuthResponse — ответ на регистрацию/логин: пользователь + JWT access token.
    """
    success: bool = True
    user: UserRead
    token: str = Field(..., examples=["eyJhbGciOi..."], description="JWT access token")
    token_type: str = Field("bearer", description="Тип токена")
    expires_in: int = Field(..., examples=[604800], description="Время жизни токена (секунды)")
