"""User and professional profile model definitions."""

import enum

from sqlalchemy import Column, Enum, ForeignKey, Integer, Numeric, String
from backend.database import Base


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    PROFESSIONAL = "professional"
    ADMIN = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    role = Column(
        Enum(UserRole, native_enum=False, values_callable=lambda roles: [role.value for role in roles]),
        nullable=False,
        default=UserRole.PATIENT,
    )


class ProfessionalProfile(Base):
    """Scheduling and pricing settings of a professional."""
    __tablename__ = "professional_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    timezone = Column(String, nullable=False)  # IANA name, e.g. Africa/Lagos
    consultation_fee = Column(Numeric(12, 2), nullable=False, default=0)
