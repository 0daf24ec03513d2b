from pydantic import BaseModel, Field

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str

class SignupRequest(BaseModel):
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str
    confirm_password: str
    name: str | None = Field(default=None, max_length=120)

class SessionUserOut(BaseModel):
    id: str
    email: str

class SessionOut(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    user: SessionUserOut

class SignupOut(BaseModel):
    message: str
    user: SessionUserOut
