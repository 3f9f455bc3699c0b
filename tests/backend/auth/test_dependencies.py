import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from backend.auth.dependencies import get_current_user, require_role
from backend.auth.jwt_handler import create_access_token, decode_access_token
from backend.core import config
from backend.models.user import UserRole


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


@pytest.fixture(autouse=True)
def no_dev_bypass(monkeypatch):
    monkeypatch.setattr(config, 'DEV_AUTH_EMAIL', '')


def test_token_subject_is_normalized() -> None:
    token = create_access_token(' Patient@Example.com ')

    assert decode_access_token(token)['sub'] == 'patient@example.com'


def test_valid_token_resolves_the_user(db, patient) -> None:
    user = get_current_user(credentials=_bearer(create_access_token(patient.email)), db=db)

    assert user.id == patient.id


def test_missing_credentials_are_rejected(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=None, db=db)

    assert exception_info.value.status_code == 401


def test_garbage_token_is_rejected(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_bearer('not.a.token'), db=db)

    assert exception_info.value.status_code == 401


def test_token_for_unknown_user_is_rejected(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_bearer(create_access_token('ghost@example.com')), db=db)

    assert exception_info.value.detail == 'User not found'


def test_dev_bypass_applies_only_in_development(db, patient, monkeypatch) -> None:
    monkeypatch.setattr(config, 'DEV_AUTH_EMAIL', patient.email)
    monkeypatch.setattr(config, 'APP_ENV', 'development')

    assert get_current_user(credentials=None, db=db).id == patient.id

    monkeypatch.setattr(config, 'APP_ENV', 'production')
    with pytest.raises(HTTPException):
        get_current_user(credentials=None, db=db)


def test_require_role_refuses_other_roles(patient, admin) -> None:
    guard = require_role(UserRole.ADMIN)

    assert guard(user=admin) is admin
    with pytest.raises(HTTPException) as exception_info:
        guard(user=patient)

    assert exception_info.value.status_code == 403
