import pytest

from docqa_server.auth.security import get_current_user
from docqa_server.auth.models import UserContext
from docqa_server.core.errors import UnauthorizedError

from conftest import create_token


class MockCredentials:
    def __init__(self, token):
        self.credentials = token


def test_valid_jwt_accepted():
    user = get_current_user(MockCredentials(create_token(sub="user-42", email="a@b.c")))

    assert isinstance(user, UserContext)
    assert user.user_id == "user-42"
    assert user.email == "a@b.c"


def test_email_is_optional():
    user = get_current_user(MockCredentials(create_token(email=None)))
    assert user.email is None


def test_missing_credentials_rejected():
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(None)
    assert excinfo.value.status_code == 401


def test_expired_jwt_rejected():
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(MockCredentials(create_token(expired=True)))
    assert excinfo.value.status_code == 401
    assert "expired" in str(excinfo.value)


def test_wrong_issuer_rejected():
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(MockCredentials(create_token(issuer="someone-else")))
    assert excinfo.value.status_code == 401
    assert "issuer" in str(excinfo.value)


def test_wrong_audience_rejected():
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(MockCredentials(create_token(audience="wrong-audience")))
    assert excinfo.value.status_code == 401
    assert "audience" in str(excinfo.value)


def test_wrong_secret_rejected():
    token = create_token(secret="a-different-secret-that-is-long-enough")
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(MockCredentials(token))
    assert excinfo.value.status_code == 401


def test_missing_subject_rejected():
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(MockCredentials(create_token(sub=None)))
    assert excinfo.value.status_code == 401


def test_malformed_token_rejected():
    with pytest.raises(UnauthorizedError) as excinfo:
        get_current_user(MockCredentials("not.a.jwt"))
    assert excinfo.value.status_code == 401


def test_user_context_is_frozen():
    user = UserContext(user_id="u")
    with pytest.raises(Exception):
        user.user_id = "other"
