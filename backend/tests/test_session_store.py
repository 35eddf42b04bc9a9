import pytest
from sqlalchemy.exc import OperationalError

from exceptions import SessionNotFoundError, StoreUnavailableError
from models import AuthSession


def test_issue_then_resolve(session_store, make_user):
    user = make_user()
    token = session_store.issue(user.id)

    assert token
    assert session_store.resolve(token) == user.id


def test_unknown_token_is_not_found(session_store):
    with pytest.raises(SessionNotFoundError):
        session_store.resolve("no-such-token")
    with pytest.raises(SessionNotFoundError):
        session_store.resolve(None)


def test_token_expires_after_fixed_ttl(session_store, make_user, clock):
    user = make_user()
    token = session_store.issue(user.id)

    clock.advance(hours=23, minutes=59, seconds=59)
    assert session_store.resolve(token) == user.id

    clock.advance(seconds=1)
    with pytest.raises(SessionNotFoundError):
        session_store.resolve(token)


def test_resolve_does_not_extend_ttl(session_store, make_user, clock, db_session):
    user = make_user()
    token = session_store.issue(user.id)
    expires_at = db_session.get(AuthSession, token).expires_at

    clock.advance(hours=12)
    session_store.resolve(token)

    db_session.expire_all()
    assert db_session.get(AuthSession, token).expires_at == expires_at


def test_revoke_twice_reports_not_found(session_store, make_user):
    user = make_user()
    token = session_store.issue(user.id)

    assert session_store.revoke(token) is True
    with pytest.raises(SessionNotFoundError):
        session_store.resolve(token)
    with pytest.raises(SessionNotFoundError):
        session_store.revoke(token)


def test_revoke_expired_token_is_not_found(session_store, make_user, clock):
    token = session_store.issue(make_user().id)
    clock.advance(days=2)

    with pytest.raises(SessionNotFoundError):
        session_store.revoke(token)


def test_sessions_are_independent(session_store, make_user):
    user = make_user()
    first = session_store.issue(user.id)
    second = session_store.issue(user.id)

    assert first != second
    session_store.revoke(first)
    assert session_store.resolve(second) == user.id


def test_purge_expired_only_removes_dead_rows(session_store, make_user, clock, db_session):
    user = make_user()
    old = session_store.issue(user.id)
    clock.advance(hours=20)
    fresh = session_store.issue(user.id)
    clock.advance(hours=5)

    assert session_store.purge_expired() == 1
    assert db_session.get(AuthSession, old) is None
    assert session_store.resolve(fresh) == user.id


def test_backend_outage_surfaces_as_store_unavailable(session_store, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    monkeypatch.setattr(session_store.session_repo, "get_live", broken)

    with pytest.raises(StoreUnavailableError):
        session_store.resolve("any-token")
