"""SQL persistence for users, tags and cache entries.

The credential store is the only writer of OAuth tokens. Everything else
reads users through it and gets plain ``Credential`` objects back, never
live ORM rows.

Example:
    >>> db = Database("sqlite:///inbox_health.db")
    >>> db.create_all()
    >>> users = CredentialStore(db)
    >>> for cred in users.list_credentials(exclude_tag="admin"):
    ...     print(cred.email, bool(cred.access_token))
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Table,
    Text,
    create_engine,
    select,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    selectinload,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from inbox_health.exceptions import TagNotFound, UserNotFound
from inbox_health.models import Credential

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


user_tags = Table(
    "user_tags",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    picture: Mapped[str | None] = mapped_column(Text)
    google_id: Mapped[str | None] = mapped_column(String(64), unique=True)
    access_token: Mapped[str | None] = mapped_column(Text)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    tags: Mapped[list[Tag]] = relationship(secondary=user_tags, back_populates="users")

    def to_credential(self) -> Credential:
        return Credential(
            user_id=self.id,
            email=self.email,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
        )


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    users: Mapped[list[User]] = relationship(secondary=user_tags, back_populates="tags")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    expires_at: Mapped[float | None] = mapped_column(Float)


class Database:
    """Engine and session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            # Request handlers run in a threadpool
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)
        self._sessionmaker = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create all tables that don't exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info(f"Database schema ready at {self.engine.url!r}")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session scope that commits on success and rolls back on error."""
        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class CredentialStore:
    """User records and their OAuth tokens."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, user_id: str) -> Credential:
        """Read one user's credential.

        Raises:
            UserNotFound: If no user has this id.
        """
        with self.db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFound(user_id)
            return user.to_credential()

    def list_credentials(
        self,
        exclude_tag: str | None = None,
        require_access_token: bool = False,
    ) -> list[Credential]:
        """List user credentials in a stable order.

        Args:
            exclude_tag: Skip users carrying a tag with this name.
            require_access_token: Only return users that have an access token.
        """
        stmt = select(User).order_by(User.created_at, User.email)
        if exclude_tag:
            stmt = stmt.where(~User.tags.any(Tag.name == exclude_tag))
        if require_access_token:
            stmt = stmt.where(User.access_token.is_not(None))

        with self.db.session() as session:
            return [user.to_credential() for user in session.scalars(stmt)]

    def update_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None = None,
    ) -> None:
        """Persist a refreshed access token, and the refresh token if rotated.

        Raises:
            UserNotFound: If no user has this id.
        """
        with self.db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFound(user_id)
            user.access_token = access_token
            if refresh_token:
                user.refresh_token = refresh_token
        logger.info(f"Stored refreshed token for user {user_id}")

    def upsert_from_userinfo(
        self,
        userinfo: dict[str, Any],
        access_token: str | None,
        refresh_token: str | None,
    ) -> dict[str, Any]:
        """Create or update a user from an OpenID Connect userinfo payload.

        A missing refresh token keeps the stored one; Google only returns it
        on the first consent.

        Returns:
            The user as a dict (without tokens).
        """
        email = userinfo.get("email")
        if not email:
            raise ValueError("userinfo response has no email")

        with self.db.session() as session:
            user = session.scalars(select(User).where(User.email == email)).first()
            if user is None:
                user = User(email=email, google_id=userinfo.get("id") or userinfo.get("sub"))
                session.add(user)
                logger.info(f"Onboarded new user {email}")
            user.name = userinfo.get("name")
            user.picture = userinfo.get("picture")
            user.access_token = access_token
            if refresh_token:
                user.refresh_token = refresh_token
            session.flush()
            return _user_to_dict(user, tags=False)

    def list_users(self) -> list[dict[str, Any]]:
        """List users with their tags, tokens excluded."""
        stmt = select(User).options(selectinload(User.tags)).order_by(User.created_at, User.email)
        with self.db.session() as session:
            return [_user_to_dict(user) for user in session.scalars(stmt)]


class TagStore:
    """Tag records and the user-tag association."""

    def __init__(self, db: Database):
        self.db = db

    def list_tags(self) -> list[dict[str, Any]]:
        with self.db.session() as session:
            return [tag.to_dict() for tag in session.scalars(select(Tag).order_by(Tag.name))]

    def create(self, name: str) -> dict[str, Any]:
        """Create a tag, or return the existing one with this name."""
        name = name.strip()
        if not name:
            raise ValueError("Tag name must not be empty")

        with self.db.session() as session:
            tag = session.scalars(select(Tag).where(Tag.name == name)).first()
            if tag is None:
                tag = Tag(name=name)
                session.add(tag)
                session.flush()
                logger.info(f"Created tag {name!r}")
            return tag.to_dict()

    def user_tags(self, user_id: str) -> list[dict[str, Any]]:
        with self.db.session() as session:
            return _tags_of(self._user(session, user_id))

    def add_to_user(self, user_id: str, tag_id: str) -> list[dict[str, Any]]:
        """Attach a tag to a user. Attaching twice is a no-op.

        Returns:
            The user's tags after the change.
        """
        with self.db.session() as session:
            user = self._user(session, user_id)
            tag = self._tag(session, tag_id)
            if tag not in user.tags:
                user.tags.append(tag)
            session.flush()
            return _tags_of(user)

    def remove_from_user(self, user_id: str, tag_id: str) -> list[dict[str, Any]]:
        """Detach a tag from a user. Detaching an absent tag is a no-op.

        Returns:
            The user's tags after the change.
        """
        with self.db.session() as session:
            user = self._user(session, user_id)
            tag = self._tag(session, tag_id)
            if tag in user.tags:
                user.tags.remove(tag)
            session.flush()
            return _tags_of(user)

    @staticmethod
    def _user(session: Session, user_id: str) -> User:
        user = session.get(User, user_id, options=[selectinload(User.tags)])
        if user is None:
            raise UserNotFound(user_id)
        return user

    @staticmethod
    def _tag(session: Session, tag_id: str) -> Tag:
        tag = session.get(Tag, tag_id)
        if tag is None:
            raise TagNotFound(tag_id)
        return tag


def _tags_of(user: User) -> list[dict[str, Any]]:
    return [tag.to_dict() for tag in sorted(user.tags, key=lambda t: t.name)]


def _user_to_dict(user: User, tags: bool = True) -> dict[str, Any]:
    data = {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "picture": user.picture,
        "hasAccessToken": bool(user.access_token),
        "hasRefreshToken": bool(user.refresh_token),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
    if tags:
        data["tags"] = _tags_of(user)
    return data
