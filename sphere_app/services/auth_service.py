# sphere_app/services/auth_service.py

import itertools
import logging
import threading
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import requests
from firebase_admin import auth as firebase_auth

from sphere_app.core.exceptions import AuthError, SignInError
from sphere_app.core.security import generate_nonce, nonce_matches, sha256_hex
from sphere_app.models.credential import AppleIDCredential
from sphere_app.models.user import User

logger = logging.getLogger(__name__)

StateListener = Callable[[Optional[User]], None]
Completion = Callable[[Optional[User], Optional[Exception]], None]


class BaseAuthService:
    """
    nonce 관리와 인증 상태 리스너 관리를 담당하는 공통 클래스.
    상태가 바뀌면 등록된 리스너에 현재 사용자(로그아웃 상태면 None)를 전달합니다.
    """

    def __init__(self):
        self.current_nonce: Optional[str] = None
        self.current_user: Optional[User] = None
        self._listeners: Dict[int, StateListener] = {}
        self._handles = itertools.count(1)
        self._lock = threading.RLock()

    # --- nonce ---
    def create_nonce(self, length: int = 32) -> str:
        self.current_nonce = generate_nonce(length)
        return self.current_nonce

    @property
    def sha256_nonce(self) -> Optional[str]:
        """Apple에 전달할 nonce 해시. create_nonce 호출 전에는 None입니다."""
        if self.current_nonce is None:
            return None
        return sha256_hex(self.current_nonce)

    # --- 인증 상태 리스너 ---
    def add_state_listener(self, listener: StateListener) -> int:
        """리스너를 등록하고 즉시 현재 상태를 한 번 전달합니다."""
        with self._lock:
            handle = next(self._handles)
            self._listeners[handle] = listener
            user = self.current_user
        listener(user)
        return handle

    def remove_state_listener(self, handle: int) -> None:
        with self._lock:
            self._listeners.pop(handle, None)

    def _set_current_user(self, user: Optional[User]) -> None:
        with self._lock:
            self.current_user = user
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(user)

    def _require_user(self) -> User:
        if self.current_user is None:
            raise AuthError("로그인된 사용자가 없습니다.")
        return self.current_user

    def _consume_nonce(self) -> str:
        if self.current_nonce is None:
            raise SignInError("Invalid state: 로그인 요청 없이 로그인 결과가 도착했습니다.")
        nonce, self.current_nonce = self.current_nonce, None
        return nonce


class FirebaseAuthService(BaseAuthService):
    """
    Apple ID credential을 Firebase Authentication에 전달하는 서비스.
    로그인은 Identity Toolkit REST API(signInWithIdp), 프로필 수정은 firebase_admin.auth를 사용합니다.
    """
    _sign_in_url = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithIdp"
    provider_id = "apple.com"

    def __init__(self, api_key: str, request_uri: str = "http://localhost", timeout: float = 10,
                 http: Optional[requests.Session] = None, admin_auth=firebase_auth):
        super().__init__()
        if not api_key:
            raise ValueError("FIREBASE_WEB_API_KEY 설정이 .env 또는 설정 파일에 필요합니다.")
        self.api_key = api_key
        self.request_uri = request_uri
        self.timeout = timeout
        self.http = http or requests.Session()
        self.admin_auth = admin_auth
        self.id_token: Optional[str] = None
        self.refresh_token: Optional[str] = None

    def authenticate(self, credential: AppleIDCredential, completion: Optional[Completion] = None) -> Optional[User]:
        """
        Apple ID credential로 Firebase에 로그인합니다.
        completion이 주어지면 결과와 오류를 completion으로 전달하고, 없으면 오류를 그대로 발생시킵니다.
        """
        try:
            user = self._sign_in_with_apple(credential)
        except AuthError as e:
            if completion is None:
                raise
            completion(None, e)
            return None
        if completion is not None:
            completion(user, None)
        return user

    def _sign_in_with_apple(self, credential: AppleIDCredential) -> User:
        hashed_nonce = self.sha256_nonce
        raw_nonce = self._consume_nonce()
        if not credential.identity_token:
            raise SignInError("Apple identity token을 가져올 수 없습니다.")
        if not nonce_matches(credential.identity_token, hashed_nonce):
            raise SignInError("identity token의 nonce가 요청한 nonce와 일치하지 않습니다.")

        post_body = urlencode({
            'id_token': credential.identity_token,
            'providerId': self.provider_id,
            'nonce': raw_nonce,
        })
        try:
            response = self.http.post(
                self._sign_in_url,
                params={'key': self.api_key},
                json={
                    'postBody': post_body,
                    'requestUri': self.request_uri,
                    'returnIdpCredential': True,
                    'returnSecureToken': True,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Firebase signInWithIdp 요청 실패: {e}", exc_info=True)
            raise SignInError("Firebase 인증 서버 요청에 실패했습니다.") from e

        user = User.from_identity_response(data)
        if not user.email and credential.email:
            user = user.with_changes(email=credential.email)

        # Apple은 이름을 최초 로그인 때만 알려주므로 Firebase 사용자에 한 번 저장해 둡니다.
        full_name = credential.full_name.formatted() if credential.full_name else None
        if not user.display_name and full_name:
            try:
                self.admin_auth.update_user(user.user_id, display_name=full_name)
                user = user.with_changes(display_name=full_name)
            except Exception as e:
                logger.warning(f"표시 이름 저장 실패 (user_id: {user.user_id}): {e}")

        self.id_token = data.get('idToken')
        self.refresh_token = data.get('refreshToken')
        logger.info(f"Firebase 로그인 성공 (user_id: {user.user_id}, new_user: {data.get('isNewUser', False)})")
        self._set_current_user(user)
        return user

    def sign_out(self) -> None:
        self.id_token = None
        self.refresh_token = None
        self._set_current_user(None)
        logger.info("Firebase 로그아웃 완료")

    def update_name(self, new_name: str) -> None:
        user = self._require_user()
        try:
            self.admin_auth.update_user(user.user_id, display_name=new_name)
        except Exception as e:
            logger.error(f"표시 이름 변경 실패 (user_id: {user.user_id}): {e}")
            raise
        self._set_current_user(user.with_changes(display_name=new_name))

    def update_email(self, new_email: str) -> None:
        user = self._require_user()
        try:
            self.admin_auth.update_user(user.user_id, email=new_email)
        except Exception as e:
            logger.error(f"이메일 변경 실패 (user_id: {user.user_id}): {e}")
            raise
        self._set_current_user(user.with_changes(email=new_email))
