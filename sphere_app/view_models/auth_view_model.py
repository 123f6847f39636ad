# sphere_app/view_models/auth_view_model.py
"""
Firebase 인증 상태를 구독해 is_logged_in / user 두 필드로 노출하는 뷰모델.

    auth_service = FirebaseAuthService(api_key=...)
    view_model = AuthViewModel(auth_service)      # 실제 서비스에 위임
    preview_model = MockAuthViewModel()           # 로컬 상태만 변경 (UI 프리뷰/테스트용)

    view_model.listen_auth_session()
    request = view_model.begin_sign_in(CredentialRequest())
    ...  # Apple 로그인 UI
    view_model.complete_sign_in(AuthorizationResult.success(credential))
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sphere_app.core.exceptions import AuthError, CredentialExtractionError, SignInError
from sphere_app.models.credential import (
    AppleIDCredential,
    AuthorizationResult,
    AuthorizationScope,
    CredentialRequest,
)
from sphere_app.models.user import User
from sphere_app.services.auth_session import AuthSession
from sphere_app.services.mock_auth_service import MockAuthService
from sphere_app.view_models.observable import Dispatcher, ObservableObject, Published

ErrorHandler = Callable[[AuthError], None]

_DEFAULT = object()


class AuthenticatableViewModel(ObservableObject, ABC):
    """
    인증 뷰모델 인터페이스.

    :param logger: 로그를 남길 로거. 기본값은 모듈 로거입니다.
    :param on_error: 로그인 실패 등 삼켜지는 오류를 전달받을 콜백
    :param strict: True면 오류를 로그로만 남기지 않고 예외로 발생시킵니다.
    """
    is_logged_in = Published(False)
    user = Published(None)

    def __init__(self, auth_session: Optional[AuthSession] = None, logger: Optional[logging.Logger] = None,
                 dispatcher: Optional[Dispatcher] = None, on_error: Optional[ErrorHandler] = None,
                 strict: bool = False):
        super().__init__(dispatcher)
        self.auth_session = auth_session
        self.logger = logger or logging.getLogger(__name__)
        self.on_error = on_error
        self.strict = strict

    def _report(self, error: AuthError, cause: Optional[BaseException] = None) -> None:
        self.logger.error(f"{type(self).__name__}: {error}")
        if self.on_error is not None:
            self.on_error(error)
        if self.strict:
            raise error from cause

    @abstractmethod
    def listen_auth_session(self) -> None: ...

    @abstractmethod
    def begin_sign_in(self, request: CredentialRequest) -> CredentialRequest: ...

    @abstractmethod
    def complete_sign_in(self, result: AuthorizationResult) -> None: ...

    @abstractmethod
    def sign_out(self) -> None: ...

    @abstractmethod
    def update_name(self, new_name: str) -> None: ...

    @abstractmethod
    def update_email(self, new_email: str) -> None: ...

    def stop_listening_auth_session(self) -> None:
        """세션 구독을 끊고 auth_session을 None으로 만듭니다. 이후 listen_auth_session은 동작하지 않습니다."""
        if self.auth_session is not None:
            self.auth_session.stop_listening_authentication_state()
        self.auth_session = None
        self.logger.info(f"{type(self).__name__}: auth_session -> None")

    def state(self) -> dict:
        return {"is_logged_in": self.is_logged_in, "user": self.user}


class AuthViewModel(AuthenticatableViewModel):
    """실제 인증 서비스와 세션에 위임하는 뷰모델."""

    def __init__(self, auth_service, auth_session=_DEFAULT, **kwargs):
        if auth_session is _DEFAULT:
            auth_session = AuthSession(auth_service)
        super().__init__(auth_session, **kwargs)
        self.auth_service = auth_service
        self._unsubscribe = None

    def listen_auth_session(self) -> None:
        if self.auth_session is None:
            self.logger.warning("listen_auth_session(): auth_session이 None이라 구독할 수 없습니다.")
            return
        if self._unsubscribe is not None:
            self.logger.warning("listen_auth_session(): 이미 auth_session을 구독 중입니다.")
            return
        self.auth_session.listen_authentication_state()
        self._unsubscribe = self.auth_session.subscribe(self._on_session_changed)
        self._on_session_changed(self.auth_session.is_logged_in, self.auth_session.user)

    def stop_listening_auth_session(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        super().stop_listening_auth_session()

    def _on_session_changed(self, is_logged_in: bool, user: Optional[User]) -> None:
        self.is_logged_in = is_logged_in
        self.user = user

    def begin_sign_in(self, request: CredentialRequest) -> CredentialRequest:
        # 요청마다 새 nonce를 만들고, Apple에는 해시만 보냅니다.
        # 원본 nonce는 Firebase 인증 시 함께 보내 응답 재사용(replay)을 막습니다.
        self.auth_service.create_nonce()
        request.requested_scopes = [AuthorizationScope.EMAIL, AuthorizationScope.FULL_NAME]
        request.nonce = self.auth_service.sha256_nonce
        return request

    def complete_sign_in(self, result: AuthorizationResult) -> None:
        if result.error is not None:
            self._report(SignInError(f"Apple 로그인 오류: {result.error}"), cause=result.error)
            return

        credential = result.credential
        if not isinstance(credential, AppleIDCredential):
            self._report(CredentialExtractionError("Apple ID credential을 가져올 수 없습니다."))
            return

        self.logger.info("Apple 로그인 결과를 받았습니다. Firebase 인증을 진행합니다.")
        try:
            # 결과는 세션 알림으로 반영되므로 completion은 넘기지 않습니다.
            self.auth_service.authenticate(credential)
        except AuthError as e:
            self._report(e, cause=e.__cause__)

    def sign_out(self) -> None:
        self.auth_service.sign_out()

    def update_name(self, new_name: str) -> None:
        self.auth_service.update_name(new_name)

    def update_email(self, new_email: str) -> None:
        self.auth_service.update_email(new_email)


class MockAuthViewModel(AuthenticatableViewModel):
    """
    서비스에 위임하지 않고 로컬 상태만 바꾸는 뷰모델. (UI 프리뷰, 테스트용)

    :param instant_sign_in: True면 begin_sign_in 시점에 바로 로그인됩니다.
                            시뮬레이터처럼 Apple 로그인 결과가 오지 않는 환경을 위한 옵션입니다.
    """

    def __init__(self, auth_session=_DEFAULT, instant_sign_in: bool = False, **kwargs):
        if auth_session is _DEFAULT:
            auth_session = AuthSession(MockAuthService())
        super().__init__(auth_session, **kwargs)
        self.instant_sign_in = instant_sign_in

    def listen_auth_session(self) -> None:
        if self.auth_session is None:
            self.logger.warning("MockAuthViewModel.listen_auth_session(): auth_session이 None이라 구독할 수 없습니다.")
            return
        self.auth_session.listen_authentication_state()

    def begin_sign_in(self, request: CredentialRequest) -> CredentialRequest:
        if self.instant_sign_in:
            self.user = User.mock()
            self.is_logged_in = True
        self.logger.info("MockAuthViewModel: begin_sign_in")
        return request

    def complete_sign_in(self, result: AuthorizationResult) -> None:
        self.user = User.mock()
        self.is_logged_in = True
        self.logger.info("MockAuthViewModel: complete_sign_in")

    def sign_out(self) -> None:
        self.user = None
        self.is_logged_in = False
        self.logger.info("MockAuthViewModel: sign_out")

    def update_name(self, new_name: str) -> None:
        if self.user is not None:
            self.user = self.user.with_changes(display_name=new_name)
        self.logger.info(f"MockAuthViewModel: update_name({new_name})")

    def update_email(self, new_email: str) -> None:
        if self.user is not None:
            self.user = self.user.with_changes(email=new_email)
        self.logger.info(f"MockAuthViewModel: update_email({new_email})")
