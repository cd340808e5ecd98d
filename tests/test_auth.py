"""
Identity service tests - register, login, logout and token resolution.
"""

from unittest.mock import patch

import pytest

from mockbackend.core.errors import BadRequest, Conflict, Forbidden, Unauthorized
from mockbackend.core.auth import UserService, hash_password
from mockbackend.core.store import CollectionStore
from mockbackend.util.logging import logger


@pytest.fixture
def users():
    return UserService(CollectionStore({
        'users': {
            'u1': {'email': 'peter@abv.bg', 'username': 'Peter', 'hashedPassword': hash_password('123456')},
        }
    }))


def test_hash_password_is_stable():
    assert hash_password('123456') == hash_password('123456')
    assert hash_password('123456') != hash_password('654321')
    assert len(hash_password('x')) == 64


def test_login_opens_session(users):
    result = users.login({'email': 'peter@abv.bg', 'password': '123456'})

    assert result['_id'] == 'u1'
    assert result['username'] == 'Peter'
    assert 'hashedPassword' not in result
    assert len(result['accessToken']) == 64


def test_login_email_is_case_insensitive(users):
    assert users.login({'email': 'PETER@abv.bg', 'password': '123456'})['_id'] == 'u1'


@pytest.mark.parametrize('body', [
    {'email': 'peter@abv.bg', 'password': 'wrong'},
    {'email': 'nobody@abv.bg', 'password': '123456'},
])
def test_login_rejects_bad_credentials(users, body):
    with pytest.raises(Forbidden) as exc_info:
        users.login(body)
    assert exc_info.value.message == "Login or password don't match"


@pytest.mark.parametrize('body', [{}, {'email': 'a@b.c'}, {'email': '', 'password': 'x'}, 'text'])
def test_missing_credentials_raise_bad_request(users, body):
    with pytest.raises(BadRequest):
        users.register(body)


def test_register_creates_user_and_session(users):
    result = users.register({'email': 'george@abv.bg', 'password': 'pw', 'username': 'George'})

    assert result['email'] == 'george@abv.bg'
    assert 'password' not in result
    assert 'hashedPassword' not in result
    assert users.resolve_user(result['accessToken'])['_id'] == result['_id']


def test_register_ignores_system_fields(users):
    result = users.register({'email': 'eve@abv.bg', 'password': 'pw', '_ownerId': 'u1', '_id': 'forged'})
    assert result['_id'] != 'forged'
    assert '_ownerId' not in result


def test_register_duplicate_email_conflicts(users):
    with pytest.raises(Conflict):
        users.register({'email': 'peter@abv.bg', 'password': 'other'})


def test_resolve_user_without_token(users):
    assert users.resolve_user(None) is None
    assert users.resolve_user('') is None


def test_resolve_user_unknown_token_forbidden(users):
    with pytest.raises(Forbidden):
        users.resolve_user('nope')


def test_logout_invalidates_token(users):
    token = users.login({'email': 'peter@abv.bg', 'password': '123456'})['accessToken']
    users.logout(token)

    with pytest.raises(Forbidden):
        users.resolve_user(token)
    with pytest.raises(Forbidden):
        users.logout(token)


def test_logout_without_token_unauthorized(users):
    with pytest.raises(Unauthorized):
        users.logout(None)


def test_register_audit_never_logs_password(users):
    with patch.object(logger, 'log_operation') as mock_log:
        result = users.register({'email': 'eve@abv.bg', 'password': 'pw'})

    audits = [c[0] for c in mock_log.call_args_list if c[0][1] == 'audit']
    assert len(audits) == 1
    operation, status, details = audits[0]
    assert operation == 'auth_register'
    assert details['user_id'] == result['_id']
    assert details['payload']['password'] == '[REDACTED]'
