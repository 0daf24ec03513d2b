from datetime import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

Category = Literal["account_management", "system_admin", "classroom_tech", "general"]
Urgency = Literal["low", "medium", "high", "critical"]
Status = Literal["open", "in_progress", "resolved", "closed"]

# ---- Tickets ----

class TicketCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    operating_system: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=10)
    department: str | None = Field(default=None, pattern="^(student|faculty|staff)$")
    # accepted only when it names the caller
    userid: str | None = None

class TicketUpdate(BaseModel):
    category: Category | None = None
    urgency: Urgency | None = None
    status: Status | None = None
    assigned_to: str | None = Field(default=None, max_length=120)
    resolution_notes: str | None = None

    @field_validator("category", "urgency", "status")
    @classmethod
    def _not_null(cls, v, info):
        # these can be changed but never cleared
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    userid: str | None
    email: str | None = None
    operating_system: str | None
    issue_description: str | None
    department: str | None
    category: str = "general"
    urgency: str = "medium"
    status: str = "open"
    assigned_to: str | None
    estimated_time: int | None
    ai_confidence: int | None
    ai_suggestions: str | None
    resolved_at: datetime | None
    resolution_notes: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @field_validator("category", "urgency", "status", mode="before")
    @classmethod
    def _legacy_blank(cls, v, info):
        if v in (None, ""):
            return {"category": "general", "urgency": "medium", "status": "open"}[info.field_name]
        return v

# ---- Messages ----

class TicketMessageCreate(BaseModel):
    message: str

    @field_validator("message")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message must not be empty")
        return v

class TicketMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    user_id: str
    message: str
    created_at: datetime
    user_email: str | None = None
    user_name: str | None = None
