"""SQLAlchemy implementation of the store."""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Integer,
    String,
    Text,
    and_,
    create_engine,
    event,
    not_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from imagewatch.models.image import Image, ImageLayer, ImageStatus, ImageVersion, Tag
from imagewatch.models.notification import NotificationMessage, Subscription
from imagewatch.models.viewer import Authenticated, Viewer
from imagewatch.secrets import EncryptedCredential
from imagewatch.utils.errors import ImageNotFoundError, ImageWatchError, StoreError
from imagewatch.utils.logging import get_logger
from imagewatch.utils.timeutil import utc_naive

logger = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class ImageRow(Base):
    __tablename__ = "images"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), default=ImageStatus.MISSING.value)
    latest: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)
    is_automated: Mapped[bool] = mapped_column(Boolean, default=False)
    pull_count: Mapped[int] = mapped_column(Integer, default=0)
    star_count: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    badge_count: Mapped[int] = mapped_column(Integer, default=0)
    badges_installed: Mapped[int] = mapped_column(Integer, default=0)
    auth_token: Mapped[str] = mapped_column(String(64), default="")
    webhook_url: Mapped[str] = mapped_column(String(512), default="")


class ImageVersionRow(Base):
    __tablename__ = "image_versions"

    image_name: Mapped[str] = mapped_column(ForeignKey("images.name"), primary_key=True)
    sha: Mapped[str] = mapped_column(String(255), primary_key=True)
    author: Mapped[str] = mapped_column(String(255), default="")
    labels: Mapped[str] = mapped_column(Text, default="")
    layer_count: Mapped[int] = mapped_column(Integer, default=0)
    download_size: Mapped[int] = mapped_column(Integer, default=0)
    created: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    layers: Mapped[str] = mapped_column(Text, default="")
    fingerprint: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    manifest: Mapped[str] = mapped_column(Text, default="")


class TagRow(Base):
    __tablename__ = "tags"
    __table_args__ = (
        ForeignKeyConstraint(
            ["image_name", "sha"],
            ["image_versions.image_name", "image_versions.sha"],
            ondelete="RESTRICT",
        ),
    )

    image_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    tag: Mapped[str] = mapped_column(String(255), primary_key=True)
    sha: Mapped[str] = mapped_column(String(255))


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    image_name: Mapped[str] = mapped_column(String(255), index=True)
    webhook_url: Mapped[str] = mapped_column(String(512))


class NotificationMessageRow(Base):
    __tablename__ = "notification_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(ForeignKey("subscriptions.id"))
    image_name: Mapped[str] = mapped_column(String(255))
    webhook_url: Mapped[str] = mapped_column(String(512))
    message: Mapped[str] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    status_code: Mapped[int] = mapped_column(Integer, default=0)
    response: Mapped[str] = mapped_column(Text, default="")
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    queued: Mapped[bool] = mapped_column(Boolean, default=False, index=True)


class RegistryCredentialRow(Base):
    __tablename__ = "registry_credentials"

    registry_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(255))
    encrypted_password: Mapped[str] = mapped_column(Text)
    encrypted_key: Mapped[str] = mapped_column(Text, default="")


class ImagePermissionRow(Base):
    __tablename__ = "image_permissions"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    image_name: Mapped[str] = mapped_column(String(255), primary_key=True)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores foreign keys unless asked per connection
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _image_from_row(row: ImageRow) -> Image:
    return Image(
        name=row.name,
        status=ImageStatus(row.status),
        latest=row.latest,
        description=row.description or "",
        is_private=bool(row.is_private),
        is_automated=bool(row.is_automated),
        pull_count=row.pull_count or 0,
        star_count=row.star_count or 0,
        last_updated=row.last_updated,
        badge_count=row.badge_count or 0,
        badges_installed=row.badges_installed or 0,
        auth_token=row.auth_token or "",
        webhook_url=row.webhook_url or "",
    )


def _apply_image(row: ImageRow, image: Image) -> None:
    row.status = image.status.value
    row.latest = image.latest
    row.description = image.description
    row.is_private = image.is_private
    row.is_automated = image.is_automated
    row.pull_count = image.pull_count
    row.star_count = image.star_count
    row.last_updated = utc_naive(image.last_updated)
    row.badge_count = image.badge_count
    row.badges_installed = image.badges_installed
    row.auth_token = image.auth_token
    row.webhook_url = image.webhook_url


def _encode_layers(layers: List[ImageLayer]) -> str:
    if not layers:
        return ""
    return json.dumps([layer.model_dump() for layer in layers])


def _decode_layers(text: str) -> List[ImageLayer]:
    if not text:
        return []
    return [ImageLayer.model_validate(item) for item in json.loads(text)]


def _version_from_row(row: ImageVersionRow) -> ImageVersion:
    return ImageVersion(
        image_name=row.image_name,
        sha=row.sha,
        author=row.author or "",
        labels=row.labels or "",
        layer_count=row.layer_count or 0,
        download_size=row.download_size or 0,
        created=row.created,
        layers=_decode_layers(row.layers),
        fingerprint=row.fingerprint,
        manifest=row.manifest or "",
    )


def _version_row(version: ImageVersion) -> ImageVersionRow:
    return ImageVersionRow(
        image_name=version.image_name,
        sha=version.sha,
        author=version.author,
        labels=version.labels,
        layer_count=version.layer_count,
        download_size=version.download_size,
        created=utc_naive(version.created),
        layers=_encode_layers(version.layers),
        fingerprint=version.fingerprint,
        manifest=version.manifest,
    )


def _message_from_row(row: NotificationMessageRow) -> NotificationMessage:
    return NotificationMessage(
        id=row.id,
        subscription_id=row.subscription_id,
        image_name=row.image_name,
        webhook_url=row.webhook_url,
        message=row.message,
        attempts=row.attempts or 0,
        status_code=row.status_code or 0,
        response=row.response or "",
        sent_at=row.sent_at,
        queued=bool(row.queued),
    )


def _load_subscriptions(session: Session, image_name: str) -> list[Subscription]:
    rows = session.scalars(
        select(SubscriptionRow).where(SubscriptionRow.image_name == image_name).order_by(SubscriptionRow.id)
    ).all()
    return [Subscription(id=r.id, user_id=r.user_id, image_name=r.image_name, webhook_url=r.webhook_url) for r in rows]


def _write_message(session: Session, message: NotificationMessage) -> NotificationMessage:
    row = session.get(NotificationMessageRow, message.id) if message.id is not None else None
    if row is None:
        row = NotificationMessageRow()
        session.add(row)
    row.subscription_id = message.subscription_id
    row.image_name = message.image_name
    row.webhook_url = message.webhook_url
    row.message = message.message
    row.attempts = message.attempts
    row.status_code = message.status_code
    row.response = message.response
    row.sent_at = utc_naive(message.sent_at)
    row.queued = message.queued
    session.flush()
    return _message_from_row(row)


class SqlUnitOfWork:
    """Unit of work bound to one session and its transaction."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self.committed = False

    def load_tags(self, image_name: str) -> list[Tag]:
        rows = self._session.scalars(select(TagRow).where(TagRow.image_name == image_name)).all()
        return [Tag(image_name=r.image_name, tag=r.tag, sha=r.sha) for r in rows]

    def save_image(self, image: Image) -> None:
        row = self._session.get(ImageRow, image.name)
        if row is None:
            row = ImageRow(name=image.name)
            self._session.add(row)
        _apply_image(row, image)
        self._session.flush()

    def upsert_version(self, version: ImageVersion) -> None:
        row = _version_row(version)
        existing = self._session.get(ImageVersionRow, (version.image_name, version.sha))
        if existing is not None:
            # Size-phase results survive re-inspection of an unchanged version
            if not row.download_size:
                row.download_size = existing.download_size
            if not row.layers:
                row.layers = existing.layers
            if not row.fingerprint:
                row.fingerprint = existing.fingerprint
        self._session.merge(row)
        self._session.flush()

    def update_tag(self, tag: Tag) -> None:
        row = self._session.get(TagRow, (tag.image_name, tag.tag))
        if row is None:
            raise ImageWatchError(f"Tag {tag.image_name}:{tag.tag} does not exist", code="TAG_NOT_FOUND")
        row.sha = tag.sha
        self._session.flush()

    def insert_tag(self, tag: Tag) -> None:
        self._session.add(TagRow(image_name=tag.image_name, tag=tag.tag, sha=tag.sha))
        self._session.flush()

    def delete_tag(self, tag: Tag) -> None:
        row = self._session.get(TagRow, (tag.image_name, tag.tag))
        if row is not None:
            self._session.delete(row)
            self._session.flush()

    def get_subscriptions(self, image_name: str) -> list[Subscription]:
        return _load_subscriptions(self._session, image_name)

    def save_notification_message(self, message: NotificationMessage) -> NotificationMessage:
        return _write_message(self._session, message)

    def commit(self) -> None:
        self._session.commit()
        self.committed = True

    def rollback(self) -> None:
        self._session.rollback()


class SqlStore:
    """Store backed by any database SQLAlchemy supports.

    Example:
        store = SqlStore("sqlite://")
        store.create_all()
        image = store.get_or_create_image("library/nginx")
    """

    def __init__(self, url: str = "sqlite:///imagewatch.db", echo: bool = False) -> None:
        kwargs = {}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Share one connection so every session sees the same in-memory database
            kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
        self.engine = create_engine(url, echo=echo, **kwargs)
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Database error: %s", e)
            raise StoreError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Images

    def get_or_create_image(self, image_name: str) -> Image:
        with self._session() as session:
            row = session.get(ImageRow, image_name)
            if row is None:
                logger.debug("Creating image %s", image_name)
                row = ImageRow(name=image_name, status=ImageStatus.MISSING.value)
                session.add(row)
                session.flush()
            return _image_from_row(row)

    def get_image(self, image_name: str) -> Image:
        with self._session() as session:
            row = session.get(ImageRow, image_name)
            if row is None:
                raise ImageNotFoundError(image_name)
            return _image_from_row(row)

    def save_image(self, image: Image) -> None:
        with self._session() as session:
            row = session.get(ImageRow, image.name)
            if row is None:
                row = ImageRow(name=image.name)
                session.add(row)
            _apply_image(row, image)

    @contextmanager
    def unit_of_work(self) -> Iterator[SqlUnitOfWork]:
        session = self._sessions()
        uow = SqlUnitOfWork(session)
        try:
            yield uow
        finally:
            if not uow.committed:
                session.rollback()
            session.close()

    # Versions and tags

    def get_versions_by_fingerprint(self, fingerprint: str, sha: str, image_name: str) -> list[ImageVersion]:
        with self._session() as session:
            rows = session.scalars(
                select(ImageVersionRow)
                .where(ImageVersionRow.fingerprint == fingerprint)
                .where(not_(and_(ImageVersionRow.image_name == image_name, ImageVersionRow.sha == sha)))
                .order_by(ImageVersionRow.image_name, ImageVersionRow.sha)
            ).all()
            return [_version_from_row(r) for r in rows]

    def get_version(self, image_name: str, sha: str) -> ImageVersion:
        with self._session() as session:
            row = session.get(ImageVersionRow, (image_name, sha))
            if row is None:
                raise ImageNotFoundError(f"{image_name}@{sha}")
            version = _version_from_row(row)
            tags = session.scalars(
                select(TagRow).where(TagRow.image_name == image_name, TagRow.sha == sha).order_by(TagRow.tag)
            ).all()
            version.tags = [Tag(image_name=t.image_name, tag=t.tag, sha=t.sha) for t in tags]
            return version

    def get_versions_with_manifests(self, image_name: str) -> list[ImageVersion]:
        with self._session() as session:
            rows = session.scalars(
                select(ImageVersionRow)
                .where(ImageVersionRow.image_name == image_name)
                .where(ImageVersionRow.manifest != "")
                .order_by(ImageVersionRow.sha)
            ).all()
            return [_version_from_row(r) for r in rows]

    def version_needs_size_or_layers(self, version: ImageVersion) -> bool:
        with self._session() as session:
            row = session.get(ImageVersionRow, (version.image_name, version.sha))
            if row is None:
                return True
            return row.download_size == 0 or not row.layers or not row.fingerprint

    def save_version(self, version: ImageVersion) -> None:
        with self._session() as session:
            session.merge(_version_row(version))

    def get_tag_names(self, image_name: str, sha: str) -> list[str]:
        with self._session() as session:
            return list(
                session.scalars(
                    select(TagRow.tag).where(TagRow.image_name == image_name, TagRow.sha == sha).order_by(TagRow.tag)
                ).all()
            )

    # Permissions and credentials

    def get_image_for_viewer(self, image_name: str, viewer: Viewer) -> Image | None:
        image = self.get_image(image_name)
        if not image.is_private:
            return image
        if not isinstance(viewer, Authenticated):
            return None
        with self._session() as session:
            permitted = session.get(ImagePermissionRow, (viewer.user_id, image_name)) is not None
        return image if permitted else None

    def grant_image_permission(self, user_id: int, image_name: str) -> None:
        with self._session() as session:
            if session.get(ImagePermissionRow, (user_id, image_name)) is None:
                session.add(ImagePermissionRow(user_id=user_id, image_name=image_name))

    def add_registry_credential(self, credential: EncryptedCredential) -> None:
        with self._session() as session:
            session.merge(
                RegistryCredentialRow(
                    registry_id=credential.registry_id,
                    user_id=credential.user_id,
                    username=credential.username,
                    encrypted_password=credential.encrypted_password,
                    encrypted_key=credential.encrypted_key,
                )
            )

    def get_registry_credentials(self, image_name: str) -> list[EncryptedCredential]:
        with self._session() as session:
            rows = session.scalars(
                select(RegistryCredentialRow)
                .join(ImagePermissionRow, ImagePermissionRow.user_id == RegistryCredentialRow.user_id)
                .where(ImagePermissionRow.image_name == image_name)
                .order_by(RegistryCredentialRow.user_id)
            ).all()
            return [
                EncryptedCredential(
                    registry_id=r.registry_id,
                    user_id=r.user_id,
                    username=r.username,
                    encrypted_password=r.encrypted_password,
                    encrypted_key=r.encrypted_key,
                )
                for r in rows
            ]

    # Subscriptions and delivery tasks

    def add_subscription(self, subscription: Subscription) -> Subscription:
        with self._session() as session:
            row = SubscriptionRow(
                user_id=subscription.user_id,
                image_name=subscription.image_name,
                webhook_url=subscription.webhook_url,
            )
            session.add(row)
            session.flush()
            return subscription.model_copy(update={"id": row.id})

    def get_subscriptions(self, image_name: str) -> list[Subscription]:
        with self._session() as session:
            return _load_subscriptions(session, image_name)

    def save_notification_message(self, message: NotificationMessage) -> NotificationMessage:
        with self._session() as session:
            return _write_message(session, message)

    def get_unqueued_notification_messages(self, image_name: str) -> list[NotificationMessage]:
        with self._session() as session:
            rows = session.scalars(
                select(NotificationMessageRow)
                .where(NotificationMessageRow.image_name == image_name, NotificationMessageRow.queued.is_(False))
                .order_by(NotificationMessageRow.id)
            ).all()
            return [_message_from_row(r) for r in rows]

    def mark_notification_queued(self, message_id: int) -> None:
        with self._session() as session:
            row = session.get(NotificationMessageRow, message_id)
            if row is not None:
                row.queued = True

    def get_notification_message(self, message_id: int) -> NotificationMessage:
        with self._session() as session:
            row = session.get(NotificationMessageRow, message_id)
            if row is None:
                raise ImageWatchError(
                    f"Notification message not found: {message_id}",
                    code="MESSAGE_NOT_FOUND",
                    details={"message_id": message_id},
                )
            return _message_from_row(row)
