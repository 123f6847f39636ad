# sphere_app/models/credential.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class AuthorizationScope(Enum):
    """Apple 로그인 요청 시 요청할 수 있는 사용자 정보 범위"""
    EMAIL = "email"
    FULL_NAME = "full_name"


@dataclass
class CredentialRequest:
    """
    로그인 버튼이 눌렸을 때 Apple로 보내는 요청.
    nonce에는 원본이 아닌 SHA-256 해시가 들어갑니다.
    """
    requested_scopes: List[AuthorizationScope] = field(default_factory=list)
    nonce: Optional[str] = None


@dataclass
class PersonName:
    given_name: Optional[str] = None
    family_name: Optional[str] = None

    def formatted(self) -> Optional[str]:
        parts = [p for p in (self.given_name, self.family_name) if p]
        return ' '.join(parts) if parts else None


@dataclass
class AppleIDCredential:
    """
    Apple이 돌려준 credential.
    이름과 이메일은 최초 로그인 시에만 채워져 옵니다.
    """
    user: str
    identity_token: str
    authorization_code: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[PersonName] = None


@dataclass
class AuthorizationResult:
    """Apple 로그인 완료 결과. credential 또는 error 중 하나만 채워집니다."""
    credential: Any = None
    error: Optional[Exception] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, credential: Any) -> "AuthorizationResult":
        return cls(credential=credential)

    @classmethod
    def failure(cls, error: Exception) -> "AuthorizationResult":
        return cls(error=error)
