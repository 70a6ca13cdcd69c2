"""Tests for admin password checks and session tokens."""

import bcrypt
import pytest

from ruuvi_home.auth import AdminSessionStore

NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(clock):
    return AdminSessionStore("hunter2", ttl_sec=3600, clock=clock)


def test_correct_password_issues_token(sessions):
    result = sessions.authenticate("hunter2")
    assert result.success is True
    assert result.token
    assert sessions.is_valid(result.token) is True
    assert sessions.active_count == 1


def test_tokens_are_unique(sessions):
    first = sessions.authenticate("hunter2").token
    second = sessions.authenticate("hunter2").token
    assert first != second


def test_wrong_password(sessions):
    result = sessions.authenticate("hunter3")
    assert result.success is False
    assert result.token is None
    assert result.message == "Invalid password"
    assert sessions.active_count == 0


@pytest.mark.parametrize("password", [None, "", 1234])
def test_invalid_password_format(sessions, password):
    result = sessions.authenticate(password)
    assert result.success is False
    assert result.message == "Invalid password format"


def test_not_configured():
    result = AdminSessionStore().authenticate("anything")
    assert result.success is False
    assert result.message == "Admin authentication not configured"


def test_empty_password_setting_means_not_configured():
    assert AdminSessionStore("").configured is False


def test_bcrypt_hash():
    hashed = bcrypt.hashpw(b"s3cret", bcrypt.gensalt(rounds=4)).decode()
    sessions = AdminSessionStore(password_hash=hashed)
    assert sessions.authenticate("s3cret").success is True
    assert sessions.authenticate("wrong").success is False


def test_bcrypt_hash_wins_over_plain_password():
    hashed = bcrypt.hashpw(b"from-hash", bcrypt.gensalt(rounds=4)).decode()
    sessions = AdminSessionStore("plain", hashed)
    assert sessions.authenticate("plain").success is False
    assert sessions.authenticate("from-hash").success is True


def test_malformed_hash_rejects():
    sessions = AdminSessionStore(password_hash="not-a-bcrypt-hash")
    assert sessions.authenticate("anything").success is False


def test_overlong_password_against_hash(caplog):
    hashed = bcrypt.hashpw(b"s3cret", bcrypt.gensalt(rounds=4)).decode()
    sessions = AdminSessionStore(password_hash=hashed)
    with caplog.at_level("ERROR", logger="ruuvi_home.auth"):
        result = sessions.authenticate("x" * 100)
    assert result.success is False
    assert result.message == "Invalid password"
    assert "not a valid bcrypt hash" not in caplog.text


def test_token_expires(sessions, clock):
    token = sessions.authenticate("hunter2").token
    clock.now += 3600
    assert sessions.is_valid(token) is True
    clock.now += 1
    assert sessions.is_valid(token) is False
    assert sessions.active_count == 0


def test_sweep_removes_expired(sessions, clock):
    sessions.authenticate("hunter2")
    clock.now += 1800
    sessions.authenticate("hunter2")
    clock.now += 1801
    assert sessions.sweep() == 1
    assert sessions.active_count == 1


def test_extend(sessions, clock):
    token = sessions.authenticate("hunter2").token
    clock.now += 3000
    assert sessions.extend(token) is True
    clock.now += 3000
    assert sessions.is_valid(token) is True


def test_extend_unknown_token(sessions):
    assert sessions.extend("nope") is False


def test_revoke(sessions):
    token = sessions.authenticate("hunter2").token
    sessions.revoke(token)
    assert sessions.is_valid(token) is False


@pytest.mark.parametrize("token", [None, "", 42, "unknown"])
def test_invalid_tokens(sessions, token):
    assert sessions.is_valid(token) is False


def test_session_cap_evicts_oldest(clock):
    sessions = AdminSessionStore("pw", ttl_sec=3600, max_sessions=2, clock=clock)
    first = sessions.authenticate("pw").token
    clock.now += 1
    second = sessions.authenticate("pw").token
    clock.now += 1
    third = sessions.authenticate("pw").token
    assert sessions.active_count == 2
    assert sessions.is_valid(first) is False
    assert sessions.is_valid(second) is True
    assert sessions.is_valid(third) is True


def test_day_long_session_expires_after_sweep(clock):
    sessions = AdminSessionStore("pw", clock=clock)
    token = sessions.authenticate("pw").token
    assert sessions.is_valid(token) is True
    clock.now += 24 * 60 * 60 + 1
    assert sessions.sweep() == 1
    assert sessions.is_valid(token) is False
