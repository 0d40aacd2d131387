"""Short link creation, listing and resolution.

Auto-generated codes rely on the ``short_url`` unique index: a candidate is
inserted and, if the index rejects it, a fresh one is tried, up to
``MAX_ATTEMPTS`` times. Custom slugs get a friendly existence check first,
but the insert is still the authority when two requests race for one slug.
"""
import logging
import re

from pydantic import HttpUrl, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from urlshort import crud, ids, models
from urlshort.errors import AppError, ErrorKind, invalid

logger = logging.getLogger("urlshort.links")

MAX_ATTEMPTS = 3
SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50
SLUG_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")
RESERVED_WORDS = frozenset({
    "api", "admin", "www", "app", "auth", "login", "signup", "register",
    "user", "create", "custom",
    # paths served by the app itself
    "health", "static", "docs", "redoc", "openapi.json", "favicon.ico",
})
ALLOWED_SCHEMES = {"http", "https"}

_http_url = TypeAdapter(HttpUrl)


def validate_url(url) -> str:
    if url is None or url == "":
        raise invalid("URL is required")
    if not isinstance(url, str):
        raise invalid("URL must be a string")
    url = url.strip()
    if not url:
        raise invalid("URL is required")
    # HttpUrl drops inner tabs and newlines instead of rejecting them
    if any(c.isspace() for c in url):
        raise invalid("Invalid URL format")
    try:
        parsed = _http_url.validate_python(url)
    except ValidationError:
        raise invalid("Invalid URL format")
    if parsed.scheme not in ALLOWED_SCHEMES or not parsed.host:
        raise invalid("Invalid URL format")
    # the caller's spelling is stored, not pydantic's normalized form
    return url


def validate_slug(slug) -> str:
    if slug is None or not isinstance(slug, str) or not slug.strip():
        raise invalid("Custom URL is required and must be a non-empty string")
    slug = slug.strip()
    if not SLUG_MIN_LENGTH <= len(slug) <= SLUG_MAX_LENGTH:
        raise invalid(f"Custom URL must be between {SLUG_MIN_LENGTH} and {SLUG_MAX_LENGTH} characters long")
    if not SLUG_PATTERN.fullmatch(slug):
        raise invalid("Custom URL can only contain letters, numbers, hyphens, and underscores")
    if slug.lower() in RESERVED_WORDS:
        raise invalid("This custom URL is reserved and cannot be used")
    return slug


def short_url_for(base_url: str, code: str) -> str:
    if not base_url.endswith("/"):
        base_url += "/"
    return f"{base_url}{code}"


def create_short_link(db: Session, url, owner_id: int | None = None, length: int = 7) -> str:
    full_url = validate_url(url)
    for attempt in range(1, MAX_ATTEMPTS + 1):
        code = ids.generate_code(length)
        try:
            crud.save_short_link(db, code, full_url, owner_id)
        except AppError as exc:
            if exc.kind is not ErrorKind.ALREADY_EXISTS:
                raise
            logger.warning("Short code collision on %s (attempt %d/%d)", code, attempt, MAX_ATTEMPTS)
            continue
        logger.info("Created short URL %s for user=%s", code, owner_id)
        return code
    raise AppError(
        ErrorKind.RESOURCE_EXHAUSTED,
        "Unable to generate unique short URL after multiple attempts",
    )


def create_custom_short_link(db: Session, url, slug, owner_id: int | None) -> str:
    full_url = validate_url(url)
    slug = validate_slug(slug)
    taken = AppError(
        ErrorKind.ALREADY_EXISTS,
        f'The custom URL "{slug}" is already taken. Please choose a different one.',
    )
    if crud.short_link_exists(db, slug):
        raise taken
    try:
        crud.save_short_link(db, slug, full_url, owner_id)
    except AppError as exc:
        if exc.kind is ErrorKind.ALREADY_EXISTS:
            raise taken from exc
        raise
    logger.info("Created custom short URL %s for user=%s", slug, owner_id)
    return slug


def serialize_link(link: models.ShortLink, base_url: str) -> dict:
    return {
        "id": str(link.id),
        "shortUrl": short_url_for(base_url, link.short_url),
        "originalUrl": link.full_url,
        "customUrl": link.short_url,
        "clicks": link.clicks or 0,
        "createdAt": link.created_at.isoformat() if link.created_at else None,
    }


def list_user_links(db: Session, owner_id: int, base_url: str) -> list[dict]:
    if owner_id is None:
        raise invalid("Valid user ID is required")
    links = crud.get_user_links(db, owner_id)
    logger.debug("Found %d URLs for user=%s", len(links), owner_id)
    return [serialize_link(link, base_url) for link in links]


def resolve_and_count(db: Session, code):
    """Count a visit to ``code`` and return its updated row."""
    if not isinstance(code, str) or not code.strip():
        raise invalid("Short URL ID is required")
    link = crud.increment_clicks(db, code.strip())
    if link is None:
        raise AppError(ErrorKind.NOT_FOUND, "Short URL not found")
    return link
