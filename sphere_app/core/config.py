# sphere_app/core/config.py

import os # 환경 변수를 읽기 위해 사용합니다.


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # Realtime Database 인스턴스 URL (예: https://<project>-default-rtdb.firebaseio.com)
    FIREBASE_DATABASE_URL = os.getenv('FIREBASE_DATABASE_URL')
    # Identity Toolkit REST API 호출에 사용하는 웹 API 키
    FIREBASE_WEB_API_KEY = os.getenv('FIREBASE_WEB_API_KEY')
    # signInWithIdp 요청의 requestUri. Apple 로그인은 실제 리다이렉트가 없으므로 형식만 맞으면 됩니다.
    APPLE_REQUEST_URI = os.getenv('APPLE_REQUEST_URI', 'http://localhost')
    # Identity Toolkit 요청 타임아웃(초)
    AUTH_REQUEST_TIMEOUT = float(os.getenv('AUTH_REQUEST_TIMEOUT', '10'))

    # True: Firebase 대신 메모리 기반 데이터베이스와 MockAuthService를 사용합니다.
    USE_MOCK_SERVICES = _env_flag('USE_MOCK_SERVICES')
    # True: AuthViewModel 대신 MockAuthViewModel을 사용합니다. (UI 프리뷰용)
    USE_MOCK_VIEW_MODEL = _env_flag('USE_MOCK_VIEW_MODEL')


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. 외부 Firebase에 연결하지 않습니다."""
    TESTING = True
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    USE_MOCK_SERVICES = True
    USE_MOCK_VIEW_MODEL = False


class PreviewConfig(Config):
    """UI 프리뷰용 설정. 로그인 버튼을 누르면 바로 mock 사용자로 로그인됩니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = None
    USE_MOCK_SERVICES = True
    USE_MOCK_VIEW_MODEL = True


# create_app에서 FLASK_ENV 값에 따라 설정 클래스를 선택하는 데 사용됩니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    preview=PreviewConfig
)
