# sphere_app/models/user.py
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional


@dataclass
class User:
    """
    뷰모델이 UI에 노출하는 사용자 정보.
    로그인 성공 시 생성되고, 로그아웃 시 None으로 초기화됩니다.
    """
    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_identity_response(cls, data: dict) -> "User":
        """Identity Toolkit signInWithIdp 응답으로부터 User를 만듭니다."""
        return cls(
            user_id=data['localId'],
            display_name=data.get('displayName') or data.get('fullName'),
            email=data.get('email'),
        )

    @classmethod
    def mock(cls) -> "User":
        """UI 프리뷰 및 테스트용 사용자."""
        return cls(
            user_id="mock-user-0001",
            display_name="Mock User",
            email="mock.user@example.com",
            custom_fields={"is_mock": True},
        )

    def with_changes(self, **changes) -> "User":
        return replace(self, **changes)
