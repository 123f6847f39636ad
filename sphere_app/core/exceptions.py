# sphere_app/core/exceptions.py
"""
서비스 계층에서 발생하는 예외 정의.

- DatabaseServiceError: Realtime Database 어댑터가 호출자에게 그대로 전달하는 예외
- AuthError: 인증 뷰모델이 로그로 남기거나 (strict 모드에서) 전달하는 예외
"""

from typing import Optional


class DatabaseServiceError(Exception):
    """Realtime Database 서비스 예외의 기반 클래스."""
    error_code = "DATABASE_ERROR"
    http_status = 500
    default_message = "데이터베이스 처리 중 오류가 발생했습니다."

    def __init__(self, message: Optional[str] = None, path: Optional[str] = None):
        self.message = message or self.default_message
        self.path = path
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error_code": self.error_code, "message": self.message}
        if self.path is not None:
            body["path"] = self.path
        return body


class PathConflictError(DatabaseServiceError):
    """create 대상 경로에 이미 값이 존재하는 경우."""
    error_code = "PATH_CONFLICT"
    http_status = 409
    default_message = "해당 경로에 이미 값이 존재합니다."


class PathMissingError(DatabaseServiceError):
    """update 대상 경로에 값이 없는 경우."""
    error_code = "PATH_MISSING"
    http_status = 404
    default_message = "해당 경로에 값이 존재하지 않습니다."


class ReadFailedError(DatabaseServiceError):
    error_code = "READ_FAILED"
    http_status = 502
    default_message = "데이터 조회에 실패했습니다."


class WriteFailedError(DatabaseServiceError):
    error_code = "WRITE_FAILED"
    http_status = 502
    default_message = "데이터 쓰기에 실패했습니다."


class RemoveFailedError(DatabaseServiceError):
    error_code = "REMOVE_FAILED"
    http_status = 502
    default_message = "데이터 삭제에 실패했습니다."


class DecodeFailedError(DatabaseServiceError):
    error_code = "DECODE_FAILED"
    http_status = 422
    default_message = "저장된 값을 요청한 형식으로 변환할 수 없습니다."


class ObserverExistsError(DatabaseServiceError):
    error_code = "OBSERVER_EXISTS"
    http_status = 409
    default_message = "동일한 옵저버가 이미 등록되어 있습니다."


class ObserverMissingError(DatabaseServiceError):
    error_code = "OBSERVER_MISSING"
    http_status = 404
    default_message = "등록된 옵저버를 찾을 수 없습니다."


class AuthError(Exception):
    """인증 흐름 예외의 기반 클래스."""
    error_code = "AUTH_ERROR"


class CredentialExtractionError(AuthError):
    """로그인 결과에서 Apple ID credential을 꺼낼 수 없는 경우."""
    error_code = "CREDENTIAL_EXTRACTION_FAILED"


class SignInError(AuthError):
    """Apple 로그인 또는 Firebase 인증 단계가 실패한 경우."""
    error_code = "SIGN_IN_FAILED"
