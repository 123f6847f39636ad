"""
인증 서비스 / 인증 세션 테스트
Identity Toolkit 요청과 firebase_admin.auth는 mock으로 대체합니다.
"""

from unittest import mock
from urllib.parse import parse_qs

import jwt
import pytest
import requests

from sphere_app.core.exceptions import AuthError, SignInError
from sphere_app.models.credential import AppleIDCredential, PersonName
from sphere_app.services.auth_service import FirebaseAuthService
from sphere_app.services.auth_session import AuthSession
from sphere_app.services.mock_auth_service import MockAuthService


def make_token(nonce):
    return jwt.encode({"sub": "apple-001", "nonce": nonce}, "test-secret", algorithm="HS256")


@pytest.fixture
def http():
    session = mock.Mock()
    response = mock.Mock()
    response.json.return_value = {
        "localId": "firebase-uid-1",
        "email": "ela.twin@example.com",
        "idToken": "id-token",
        "refreshToken": "refresh-token",
        "isNewUser": True,
    }
    session.post.return_value = response
    return session


@pytest.fixture
def admin_auth():
    return mock.Mock()


@pytest.fixture
def auth_service(http, admin_auth):
    return FirebaseAuthService(api_key="web-api-key", request_uri="http://localhost", http=http, admin_auth=admin_auth)


def prepared_credential(service, **kwargs):
    service.create_nonce()
    return AppleIDCredential(user="apple-001", identity_token=make_token(service.sha256_nonce), **kwargs)


def test_requires_api_key():
    with pytest.raises(ValueError):
        FirebaseAuthService(api_key=None, http=mock.Mock())


def test_authenticate_signs_in_with_raw_nonce(auth_service, http, admin_auth):
    credential = prepared_credential(auth_service, full_name=PersonName("Ela", "Twin"))
    raw_nonce = auth_service.current_nonce
    states = []
    auth_service.add_state_listener(states.append)

    user = auth_service.authenticate(credential)

    _, kwargs = http.post.call_args
    assert kwargs['params'] == {'key': 'web-api-key'}
    post_body = parse_qs(kwargs['json']['postBody'])
    assert post_body['providerId'] == ['apple.com']
    assert post_body['nonce'] == [raw_nonce]
    assert post_body['id_token'] == [credential.identity_token]

    assert user.user_id == "firebase-uid-1"
    assert user.display_name == "Ela Twin"
    admin_auth.update_user.assert_called_once_with("firebase-uid-1", display_name="Ela Twin")
    assert auth_service.current_nonce is None
    assert auth_service.id_token == "id-token"
    assert states == [None, user]


def test_authenticate_without_nonce_is_invalid_state(auth_service, http):
    credential = AppleIDCredential(user="apple-001", identity_token=make_token("whatever"))
    with pytest.raises(SignInError):
        auth_service.authenticate(credential)
    http.post.assert_not_called()


def test_authenticate_reports_to_completion(auth_service):
    received = []
    credential = AppleIDCredential(user="apple-001", identity_token=make_token("whatever"))
    result = auth_service.authenticate(credential, completion=lambda user, error: received.append((user, error)))

    assert result is None
    assert received[0][0] is None
    assert isinstance(received[0][1], SignInError)


def test_authenticate_rejects_nonce_mismatch(auth_service, http):
    auth_service.create_nonce()
    credential = AppleIDCredential(user="apple-001", identity_token=make_token("other-nonce-hash"))
    with pytest.raises(SignInError):
        auth_service.authenticate(credential)
    http.post.assert_not_called()
    assert auth_service.current_user is None


def test_authenticate_wraps_transport_errors(auth_service, http):
    http.post.side_effect = requests.ConnectionError("offline")
    credential = prepared_credential(auth_service)
    with pytest.raises(SignInError) as exc_info:
        auth_service.authenticate(credential)
    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


def test_sign_out_and_profile_updates(auth_service, admin_auth):
    with pytest.raises(AuthError):
        auth_service.update_name("Nobody")

    auth_service.authenticate(prepared_credential(auth_service))
    auth_service.update_name("Clark Kent")
    auth_service.update_email("clark.kent@example.com")

    admin_auth.update_user.assert_any_call("firebase-uid-1", display_name="Clark Kent")
    admin_auth.update_user.assert_any_call("firebase-uid-1", email="clark.kent@example.com")
    assert auth_service.current_user.display_name == "Clark Kent"
    assert auth_service.current_user.email == "clark.kent@example.com"

    auth_service.sign_out()
    assert auth_service.current_user is None
    assert auth_service.id_token is None


def test_mock_auth_service_flow():
    service = MockAuthService()
    service.create_nonce()
    user = service.authenticate(AppleIDCredential(user="apple-001", identity_token="token", email="a@example.com"))
    assert user.user_id == "apple-001"
    assert service.current_user == user

    failing = MockAuthService(fail_sign_in=True)
    failing.create_nonce()
    with pytest.raises(SignInError):
        failing.authenticate(AppleIDCredential(user="apple-001", identity_token="token"))
    assert failing.current_user is None


def test_auth_session_forwards_state():
    service = MockAuthService()
    session = AuthSession(service)
    pushes = []
    session.subscribe(lambda is_logged_in, user: pushes.append((is_logged_in, user)))

    session.listen_authentication_state()
    session.listen_authentication_state()  # 두 번 호출해도 리스너는 하나
    service.create_nonce()
    user = service.authenticate(AppleIDCredential(user="apple-001", identity_token="token"))

    assert pushes == [(False, None), (True, user)]
    assert session.is_logged_in and session.user == user

    session.stop_listening_authentication_state()
    service.sign_out()
    assert session.is_logged_in
    assert len(pushes) == 2
