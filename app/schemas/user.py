#app/schemas/user.py
from pydantic import BaseModel, ConfigDict, Field, EmailStr, constr
from datetime import datetime

class UserBase(BaseModel):
    """
    UserBase — базовая схема пользователя.
    """
    name: constr(strip_whitespace=True, min_length=1, max_length=128) = Field(..., examples=["John Doe"], description="Имя")
    email: EmailStr = Field(..., examples=["john.doe@example.com"], description="Email пользователя")

class UserCreate(UserBase):
    """
    UserCreate — регистрация пользователя (пароль обязателен).
    """
    password: constr(min_length=6) = Field(..., examples=["StrongPassw0rd!"], description="Пароль пользователя")

class UserRead(UserBase):
    """
    UserRead — схема для выдачи пользователя (response).
    """
    id: int
    is_active: bool = True
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
