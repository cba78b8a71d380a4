from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base, generate_uuid


class User(Base):
    """
    Local mirror of an identity-provider account.
    The primary key is the provider's subject id, which makes it the
    canonical identity for every other table.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # Not unique: historical imports left case-variant duplicates that
    # identity reconciliation folds back into the canonical row
    email = Column(String(255), index=True, nullable=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), default="user", nullable=False)  # user, admin

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"


class Profile(Base):
    """Legacy profile rows; the id may or may not match the canonical user id."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default="user", nullable=False)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<Profile(id={self.id}, email='{self.email}', role={self.role})>"


class UserLicense(Base):
    """Professional license held by a user, one per license type."""

    __tablename__ = "user_licenses"
    __table_args__ = (
        UniqueConstraint("user_id", "license_type", name="uq_user_licenses_user_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    license_type = Column(String(20), nullable=False)  # CPA, CFP, EA, ERPA, CDFA
    license_number = Column(String(100), nullable=False)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<UserLicense(user_id={self.user_id}, type={self.license_type})>"
