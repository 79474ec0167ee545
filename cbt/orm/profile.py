"""
cbt/orm/profile.py
Registered account profile.

A profile row is what makes an identity "provisioned": code redemption
refuses identities without one.
"""
from enum import Enum

from sqlalchemy import Column, String, DateTime, Enum as SQLEnum

from cbt.orm.base import BaseModel, utcnow


class ProfileRole(str, Enum):
    creator = "creator"
    editor = "editor"
    admin = "admin"
    user = "user"


AUTHORING_ROLES = {ProfileRole.creator, ProfileRole.editor, ProfileRole.admin}


class Profile(BaseModel):
    __tablename__ = "profiles"

    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(200), nullable=True)
    role = Column(SQLEnum(ProfileRole), nullable=False, default=ProfileRole.user, index=True)

    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self):
        return f"<Profile(id={self.id}, email={self.email}, role={self.role})>"
