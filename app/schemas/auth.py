#app/schemas/auth.py
from pydantic import BaseModel, Field

class LoginRequest(BaseModel):
    """
    LoginRequest — тело запроса для входа (email + пароль).
    """
    email: str = Field(..., examples=["john.doe@example.com"], description="Email")
    password: str = Field(..., examples=["StrongPassw0rd!"], description="Пароль")
