from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None
    role: str
    department: str | None
    created_at: datetime
    updated_at: datetime | None

class UserUpdate(BaseModel):
    # no role field: roles are not client-writable
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=120)
    department: str | None = Field(default=None, pattern="^(student|faculty|staff)$")
