import enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class MemberRole(str, enum.Enum):
    MEMBER = "MEMBER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class Member(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "members"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[MemberRole] = mapped_column(
        SAEnum(MemberRole, name="member_role"), nullable=False, default=MemberRole.MEMBER
    )

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.email
