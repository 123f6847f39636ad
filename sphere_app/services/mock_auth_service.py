# sphere_app/services/mock_auth_service.py
import logging
from typing import Optional

from sphere_app.core.exceptions import AuthError, SignInError
from sphere_app.models.credential import AppleIDCredential
from sphere_app.models.user import User
from sphere_app.services.auth_service import BaseAuthService, Completion

logger = logging.getLogger(__name__)


class MockAuthService(BaseAuthService):
    """
    네트워크 없이 동작하는 인증 서비스.
    nonce 흐름은 실제 서비스와 같게 검사하지만, 서버 호출 대신 credential로 바로 사용자를 만듭니다.
    """

    def __init__(self, fail_sign_in: bool = False):
        super().__init__()
        self.fail_sign_in = fail_sign_in
        self.authenticate_calls = 0

    def authenticate(self, credential: AppleIDCredential, completion: Optional[Completion] = None) -> Optional[User]:
        self.authenticate_calls += 1
        try:
            self._consume_nonce()
            if self.fail_sign_in:
                raise SignInError("MockAuthService: 로그인이 실패하도록 설정되어 있습니다.")
            full_name = credential.full_name.formatted() if credential.full_name else None
            user = User(user_id=credential.user, display_name=full_name, email=credential.email)
        except AuthError as e:
            if completion is None:
                raise
            completion(None, e)
            return None

        logger.info(f"MockAuthService: 로그인 (user_id: {user.user_id})")
        self._set_current_user(user)
        if completion is not None:
            completion(user, None)
        return user

    def sign_out(self) -> None:
        self._set_current_user(None)

    def update_name(self, new_name: str) -> None:
        self._set_current_user(self._require_user().with_changes(display_name=new_name))

    def update_email(self, new_email: str) -> None:
        self._set_current_user(self._require_user().with_changes(email=new_email))
