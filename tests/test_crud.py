from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from urlshort import crud
from urlshort.errors import AppError, ErrorKind


def test_save_and_get(db):
    link = crud.save_short_link(db, "abc1234", "https://example.com")
    assert link.id is not None
    assert link.clicks == 0
    assert link.created_at is not None
    assert crud.get_link(db, "abc1234").full_url == "https://example.com"
    assert crud.short_link_exists(db, "abc1234")
    assert not crud.short_link_exists(db, "zzz9999")


def test_short_url_is_unique(db):
    crud.save_short_link(db, "abc1234", "https://example.com/1")
    with pytest.raises(AppError) as info:
        crud.save_short_link(db, "abc1234", "https://example.com/2")
    assert info.value.kind is ErrorKind.ALREADY_EXISTS
    # the session is usable after the rollback
    assert crud.get_link(db, "abc1234").full_url == "https://example.com/1"


def test_email_is_unique_after_normalization(db):
    crud.create_user(db, "Ada", "ada@example.com", "hash")
    with pytest.raises(AppError) as info:
        crud.create_user(db, "Ada", "  ADA@example.com", "hash")
    assert info.value.kind is ErrorKind.ALREADY_EXISTS
    assert crud.get_user_by_email(db, "Ada@Example.com").name == "Ada"


def test_default_avatar_uses_name(db):
    user = crud.create_user(db, "Ada Lovelace", "ada@example.com", "hash")
    assert user.avatar == "https://api.dicebear.com/7.x/initials/svg?seed=Ada%20Lovelace"


def test_increment_missing(db):
    assert crud.increment_clicks(db, "missing") is None


def test_increment_returns_updated_row(db):
    crud.save_short_link(db, "abc1234", "https://example.com")
    row = crud.increment_clicks(db, "abc1234")
    assert (row.short_url, row.full_url, row.clicks) == ("abc1234", "https://example.com", 1)
    assert crud.get_link(db, "abc1234").clicks == 1


def test_concurrent_increments_are_not_lost(database):
    with database.session() as session:
        crud.save_short_link(session, "hot1234", "https://example.com/hot")

    workers, visits_each = 8, 10

    def visit(_):
        with database.session() as session:
            for _ in range(visits_each):
                crud.increment_clicks(session, "hot1234")

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(visit, range(workers)))

    with database.session() as session:
        assert crud.get_link(session, "hot1234").clicks == workers * visits_each


def test_storage_errors_are_wrapped(db, monkeypatch):
    def boom(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))

    monkeypatch.setattr(db, "scalars", boom)
    with pytest.raises(AppError) as info:
        crud.get_link(db, "abc1234")
    assert info.value.kind is ErrorKind.STORAGE_FAILURE
    assert info.value.message == "Database operation failed"
