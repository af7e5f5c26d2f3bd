"""Back-office users and their permission role."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, DateTime, Boolean
from sqlalchemy.sql import func
from app.database import Base
import enum


class UserRole(str, enum.Enum):
    viewer = "viewer"
    manager = "manager"
    admin = "admin"


# Higher rank includes every permission of the lower ranks
ROLE_RANK = {UserRole.viewer: 0, UserRole.manager: 1, UserRole.admin: 2}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.viewer)

    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def has_role(self, role: UserRole) -> bool:
        return ROLE_RANK[self.role] >= ROLE_RANK[role]
