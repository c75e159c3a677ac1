import jwt
import pytest

from campus_access.auth import jwt_handler, passwords
from campus_access.core import config
from campus_access.core.errors import AuthenticationError, ValidationError


def test_access_token_round_trip_carries_identity() -> None:
    token = jwt_handler.create_access_token(42, 'USER', 'student@campus.test')

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == '42'
    assert payload['role'] == 'USER'
    assert payload['email'] == 'student@campus.test'
    assert payload['exp'] > payload['iat']


def test_expired_token_is_rejected() -> None:
    token = jwt_handler.create_access_token(42, 'USER', 'student@campus.test', expires_minutes=-1)

    with pytest.raises(AuthenticationError) as exception_info:
        jwt_handler.decode_access_token(token)

    assert exception_info.value.detail == 'Token has expired.'


def test_token_signed_with_another_key_is_rejected() -> None:
    token = jwt.encode({'sub': '1'}, 'not-the-server-key', algorithm=config.JWT_ALGORITHM)

    with pytest.raises(AuthenticationError):
        jwt_handler.decode_access_token(token)


def test_token_without_numeric_subject_is_rejected() -> None:
    token = jwt.encode({'sub': 'admin'}, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(AuthenticationError) as exception_info:
        jwt_handler.decode_access_token(token)

    assert exception_info.value.detail == 'Invalid token subject.'


def test_password_hash_verifies_only_the_hashed_password() -> None:
    hashed = passwords.hash_password('correct-horse-42')

    assert hashed != 'correct-horse-42'
    assert passwords.verify_password('correct-horse-42', hashed)
    assert not passwords.verify_password('wrong-horse-42', hashed)


@pytest.mark.parametrize('password', ['', 'short', 'x' * 73])
def test_hash_password_rejects_unusable_passwords(password: str) -> None:
    with pytest.raises(ValidationError):
        passwords.hash_password(password)


def test_verify_password_tolerates_malformed_hash() -> None:
    assert not passwords.verify_password('correct-horse-42', 'not-a-bcrypt-hash')
    assert not passwords.verify_password('correct-horse-42', '')
