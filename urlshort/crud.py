import logging
from contextlib import contextmanager

from sqlalchemy import select, update
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from urlshort import models
from urlshort.errors import AppError, ErrorKind

logger = logging.getLogger("urlshort.crud")


@contextmanager
def storage_errors(db: Session, action: str):
    """Roll back and re-raise SQLAlchemy failures as STORAGE_FAILURE."""
    try:
        yield
    except AppError:
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database operation failed while %s", action)
        raise AppError(ErrorKind.STORAGE_FAILURE, "Database operation failed") from exc


# ---------- users ----------

def get_user_by_email(db: Session, email: str) -> models.User | None:
    with storage_errors(db, "looking up user"):
        return db.scalars(
            select(models.User).where(models.User.email == email.strip().lower())
        ).first()


def get_user(db: Session, user_id: int) -> models.User | None:
    with storage_errors(db, "loading user"):
        return db.get(models.User, user_id)


def create_user(db: Session, name: str, email: str, password_hash: str, avatar: str | None = None) -> models.User:
    user = models.User(
        name=name.strip(),
        email=email.strip().lower(),
        password=password_hash,
        avatar=avatar or models.default_avatar(name.strip()),
    )
    with storage_errors(db, "creating user"):
        db.add(user)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise AppError(ErrorKind.ALREADY_EXISTS, "User with this email already exists") from exc
        db.refresh(user)
    return user


# ---------- short links ----------

def short_link_exists(db: Session, short_url: str) -> bool:
    with storage_errors(db, "checking short URL"):
        return db.scalar(
            select(models.ShortLink.id).where(models.ShortLink.short_url == short_url)
        ) is not None


def get_link(db: Session, short_url: str) -> models.ShortLink | None:
    with storage_errors(db, "loading short URL"):
        return db.scalars(
            select(models.ShortLink).where(models.ShortLink.short_url == short_url)
        ).first()


def save_short_link(db: Session, short_url: str, full_url: str, user_id: int | None = None) -> models.ShortLink:
    """Insert a mapping. A taken ``short_url`` raises ALREADY_EXISTS."""
    link = models.ShortLink(short_url=short_url, full_url=full_url, user_id=user_id, clicks=0)
    with storage_errors(db, "saving short URL"):
        db.add(link)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            # the unique index is the authority; anything else (e.g. a bad
            # user_id foreign key) is a storage failure
            if short_link_exists(db, short_url):
                raise AppError(ErrorKind.ALREADY_EXISTS, "Short URL already exists") from exc
            logger.error("Integrity error saving %s: %s", short_url, exc.orig)
            raise AppError(ErrorKind.STORAGE_FAILURE, "Database operation failed") from exc
        db.refresh(link)
    logger.info("URL saved: %s -> %s", short_url, full_url)
    return link


def increment_clicks(db: Session, short_url: str) -> Row | None:
    """Atomically bump ``clicks`` and return the updated row, or None.

    One ``UPDATE ... RETURNING`` statement, so concurrent visits never lose
    an increment. The row has ``id``, ``short_url``, ``full_url``, ``clicks``.
    """
    stmt = (
        update(models.ShortLink)
        .where(models.ShortLink.short_url == short_url)
        .values(clicks=models.ShortLink.clicks + 1)
        .returning(
            models.ShortLink.id,
            models.ShortLink.short_url,
            models.ShortLink.full_url,
            models.ShortLink.clicks,
        )
    )
    with storage_errors(db, "incrementing clicks"):
        row = db.execute(stmt).first()
        db.commit()
    return row


def get_user_links(db: Session, user_id: int) -> list[models.ShortLink]:
    with storage_errors(db, "listing user URLs"):
        return list(
            db.scalars(
                select(models.ShortLink)
                .where(models.ShortLink.user_id == user_id)
                .order_by(models.ShortLink.created_at.desc(), models.ShortLink.id.desc())
            )
        )
