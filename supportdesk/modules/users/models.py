from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from supportdesk.core.base import Base, TimestampMixin

ROLE_USER = "user"
ROLE_STAFF = "staff"
ROLES = (ROLE_USER, ROLE_STAFF)
DEPARTMENTS = ("student", "faculty", "staff")

class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # auth-service user id
    email: Mapped[str] = mapped_column(String(255), index=True, default="")
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    role: Mapped[str] = mapped_column(String(16), default=ROLE_USER)  # user | staff
    department: Mapped[str | None] = mapped_column(String(16), nullable=True, default="student")  # student | faculty | staff
