"""
Authenticator lockout behaviour and account administration
"""
from datetime import datetime, timedelta

import pytest

from auth.security import decode_session_token, verify_password
from database.models import UserRole, ErrorKind
from services.auth_service import AuthService, INVALID_CREDENTIALS_MESSAGE

NOW = datetime(2024, 6, 1, 10, 0, 0)


@pytest.fixture
def alice(account_factory):
    return account_factory(role=UserRole.TEACHER, username="alice", password="Passw0rd!")


def _fail(store, username="alice", now=NOW):
    return AuthService.authenticate(store, username, "wrong-password", now=now)


def test_successful_login_issues_session(credential_store, alice):
    result = AuthService.authenticate(credential_store, "alice", "Passw0rd!", now=NOW)

    assert result.success
    assert result.account.id == alice.id
    assert result.session.issuedAt == NOW.isoformat()
    payload = decode_session_token(result.token)
    assert payload["sub"] == alice.id
    assert payload["role"] == "teacher"
    assert credential_store.get(alice.id).lastLogin == NOW.isoformat()


def test_four_failures_then_success_resets_counter(credential_store, alice):
    for _ in range(4):
        assert _fail(credential_store).errorKind == ErrorKind.INVALID_CREDENTIALS
    assert credential_store.get(alice.id).failedLoginAttempts == 4

    result = AuthService.authenticate(credential_store, "alice", "Passw0rd!", now=NOW)

    assert result.success
    stored = credential_store.get(alice.id)
    assert stored.failedLoginAttempts == 0
    assert stored.lockedUntil is None


def test_fifth_failure_locks_for_fifteen_minutes(credential_store, alice):
    for _ in range(5):
        _fail(credential_store)

    stored = credential_store.get(alice.id)
    assert stored.failedLoginAttempts == 5
    assert stored.lockedUntil == (NOW + timedelta(minutes=15)).isoformat()

    locked = AuthService.authenticate(credential_store, "alice", "Passw0rd!", now=NOW + timedelta(minutes=1))
    assert not locked.success
    assert locked.errorKind == ErrorKind.ACCOUNT_LOCKED


def test_attempts_during_lock_do_not_count_or_extend(credential_store, alice):
    for _ in range(5):
        _fail(credential_store)
    locked_until = credential_store.get(alice.id).lockedUntil

    result = _fail(credential_store, now=NOW + timedelta(minutes=5))

    assert result.errorKind == ErrorKind.ACCOUNT_LOCKED
    stored = credential_store.get(alice.id)
    assert stored.failedLoginAttempts == 5
    assert stored.lockedUntil == locked_until


def test_login_succeeds_after_lock_expires(credential_store, alice):
    for _ in range(5):
        _fail(credential_store)

    result = AuthService.authenticate(credential_store, "alice", "Passw0rd!", now=NOW + timedelta(minutes=16))

    assert result.success
    stored = credential_store.get(alice.id)
    assert stored.failedLoginAttempts == 0
    assert stored.lockedUntil is None


def test_failure_after_expiry_starts_a_new_count(credential_store, alice):
    for _ in range(5):
        _fail(credential_store)

    result = _fail(credential_store, now=NOW + timedelta(minutes=16))

    assert result.errorKind == ErrorKind.INVALID_CREDENTIALS
    stored = credential_store.get(alice.id)
    assert stored.failedLoginAttempts == 1
    assert stored.lockedUntil is None


def test_unknown_username_looks_like_wrong_password(credential_store, alice):
    unknown = AuthService.authenticate(credential_store, "nobody", "Passw0rd!", now=NOW)
    wrong = _fail(credential_store)

    assert unknown.errorKind == wrong.errorKind == ErrorKind.INVALID_CREDENTIALS
    assert unknown.error == wrong.error == INVALID_CREDENTIALS_MESSAGE


def test_inactive_account_is_rejected(credential_store, alice):
    AuthService.set_active(credential_store, alice.id, False)

    result = AuthService.authenticate(credential_store, "alice", "Passw0rd!", now=NOW)

    assert result.errorKind == ErrorKind.ACCOUNT_INACTIVE
    assert credential_store.get(alice.id).failedLoginAttempts == 0


@pytest.mark.parametrize("username,password", [("", "Passw0rd!"), ("alice", ""), ("", "")])
def test_empty_inputs_fail_without_mutation(credential_store, alice, username, password):
    result = AuthService.authenticate(credential_store, username, password, now=NOW)

    assert result.errorKind == ErrorKind.INVALID_CREDENTIALS
    assert credential_store.get(alice.id).failedLoginAttempts == 0


def test_generated_usernames_are_unique(credential_store):
    first, _ = AuthService.create_account(credential_store, "John", "Doe", "a@studyq.edu", UserRole.TEACHER)
    second, _ = AuthService.create_account(credential_store, "John", "Doe", "b@studyq.edu", UserRole.TEACHER)

    assert first.username == "john.doe"
    assert second.username == "john.doe2"
    assert first.id.startswith("TCH-")


def test_created_account_stores_only_a_hash(credential_store):
    account, temporary_password = AuthService.create_account(
        credential_store, "Jane", "Roe", "jane@studyq.edu", UserRole.STUDENT,
        academic_year=2024, current_semester=2
    )

    assert account.id.startswith("STD-")
    assert account.mustChangePassword
    assert temporary_password not in account.model_dump_json()
    assert verify_password(temporary_password, credential_store.get(account.id).passwordHash)


def test_student_requires_year_and_valid_semester(credential_store):
    with pytest.raises(ValueError):
        AuthService.create_account(credential_store, "No", "Year", "n@studyq.edu", UserRole.STUDENT)
    with pytest.raises(ValueError):
        AuthService.create_account(
            credential_store, "Bad", "Sem", "b@studyq.edu", UserRole.STUDENT,
            academic_year=2024, current_semester=9
        )


def test_duplicate_username_is_rejected(credential_store, alice):
    with pytest.raises(ValueError):
        AuthService.create_account(credential_store, "A", "B", "x@studyq.edu", UserRole.ADMIN, username="alice")


def test_reset_password_replaces_credentials_and_unlocks(credential_store, alice):
    for _ in range(5):
        _fail(credential_store)

    account, temporary_password = AuthService.reset_password(credential_store, alice.id)

    assert account.mustChangePassword
    assert account.lockedUntil is None
    assert AuthService.authenticate(credential_store, "alice", temporary_password, now=NOW).success
    assert not AuthService.authenticate(credential_store, "alice", "Passw0rd!", now=NOW).success


def test_change_password(credential_store, alice):
    ok, error = AuthService.change_password(credential_store, alice.id, "nope", "N3w-Passw0rd", "N3w-Passw0rd")
    assert (ok, error) == (False, "Current password is incorrect")

    ok, error = AuthService.change_password(credential_store, alice.id, "Passw0rd!", "N3w-Passw0rd", "other")
    assert (ok, error) == (False, "New passwords do not match")

    ok, error = AuthService.change_password(credential_store, alice.id, "Passw0rd!", "weak", "weak")
    assert not ok and "at least 8 characters" in error

    ok, error = AuthService.change_password(credential_store, alice.id, "Passw0rd!", "N3w-Passw0rd", "N3w-Passw0rd")
    assert ok and error is None
    assert AuthService.authenticate(credential_store, "alice", "N3w-Passw0rd", now=NOW).success


def test_update_and_delete_account(credential_store, account_factory):
    student = account_factory()

    updated = AuthService.update_account(credential_store, student.id, {"currentSemester": 4, "passwordHash": "x"})
    assert updated.currentSemester == 4
    assert updated.passwordHash != "x"

    with pytest.raises(ValueError):
        AuthService.update_account(credential_store, student.id, {"currentSemester": 0})

    assert AuthService.delete_account(credential_store, student.id).id == student.id
    assert credential_store.get(student.id) is None
    assert AuthService.delete_account(credential_store, student.id) is None


def test_stats_by_role(credential_store, account_factory):
    account_factory(role=UserRole.ADMIN)
    account_factory(role=UserRole.TEACHER)
    inactive = account_factory()
    account_factory()
    AuthService.set_active(credential_store, inactive.id, False)

    stats = AuthService.get_stats(credential_store)

    assert stats == {"admin": 1, "teacher": 1, "student": 2, "active": 3, "total": 4}
