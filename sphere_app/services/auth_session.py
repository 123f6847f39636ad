# sphere_app/services/auth_session.py
import logging
from typing import Callable, List, Optional

from sphere_app.models.user import User

logger = logging.getLogger(__name__)

SessionCallback = Callable[[bool, Optional[User]], None]


class AuthSession:
    """
    인증 서비스의 상태 변화를 (is_logged_in, user) 형태로 구독자에게 전달합니다.
    auth_service는 add_state_listener / remove_state_listener를 제공해야 합니다.
    """

    def __init__(self, auth_service):
        self.auth_service = auth_service
        self.is_logged_in = False
        self.user: Optional[User] = None
        self._handle = None
        self._subscribers: List[SessionCallback] = []

    @property
    def is_listening(self) -> bool:
        return self._handle is not None

    def listen_authentication_state(self) -> None:
        if self._handle is not None:
            return
        self._handle = self.auth_service.add_state_listener(self._on_state_changed)

    def stop_listening_authentication_state(self) -> None:
        if self._handle is None:
            return
        self.auth_service.remove_state_listener(self._handle)
        self._handle = None

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        """구독을 등록하고 해제 함수를 돌려줍니다."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _on_state_changed(self, user: Optional[User]) -> None:
        self.user = user
        self.is_logged_in = user is not None
        logger.debug(f"인증 상태 변경: is_logged_in={self.is_logged_in}")
        for callback in list(self._subscribers):
            callback(self.is_logged_in, self.user)
