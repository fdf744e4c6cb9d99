"""SQLAlchemy models for accounts, profiles, histories and daily quotas."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from .session import Base


class Account(Base):
    __tablename__ = "accounts"

    account_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(30), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", uselist=False, back_populates="account", cascade="all,delete-orphan")
    sessions = relationship("UserSession", back_populates="account", cascade="all,delete-orphan")
    login_histories = relationship("LoginHistory", back_populates="account", cascade="all,delete-orphan")


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="CASCADE"), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False, default="")
    gender = Column(String(16), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    bio = Column(Text, nullable=False, default="")
    photo_url = Column(String(512), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    account = relationship("Account", back_populates="user")
    daily_quota = relationship("DailyQuota", uselist=False, back_populates="user", cascade="all,delete-orphan")


class UserSession(Base):
    __tablename__ = "sessions"

    token = Column(String(128), primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="sessions")


class LoginHistory(Base):
    __tablename__ = "login_histories"

    login_history_id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False, default="")
    user_agent = Column(String(512), nullable=False, default="")
    logged_in_at = Column(DateTime(timezone=True), nullable=False)

    account = relationship("Account", back_populates="login_histories")


class SelectionHistory(Base):
    __tablename__ = "selection_histories"

    selection_history_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    candidate_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    selected_at = Column(DateTime(timezone=True), nullable=False)


class DailyQuota(Base):
    __tablename__ = "daily_quotas"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    remaining = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)
    window_start = Column(DateTime(timezone=True), nullable=False)
    window_end = Column(DateTime(timezone=True), nullable=False)
    last_reset_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    user = relationship("User", back_populates="daily_quota")
