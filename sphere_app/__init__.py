# sphere_app/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import atexit
import os
import logging
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
import firebase_admin
from firebase_admin import credentials

# - 설정
from sphere_app.core.config import config_by_name
from sphere_app.core.exceptions import AuthError, DatabaseServiceError

# - API 블루프린트
from sphere_app.api.auth.routes import auth_bp
from sphere_app.api.database.routes import database_bp

# - 서비스 / 뷰모델
from sphere_app.services.auth_service import FirebaseAuthService
from sphere_app.services.auth_session import AuthSession
from sphere_app.services.in_memory_database import InMemoryReference
from sphere_app.services.mock_auth_service import MockAuthService
from sphere_app.services.realtime_database_service import RealtimeDatabaseService
from sphere_app.view_models.auth_view_model import AuthViewModel, MockAuthViewModel


def create_app(config_name: str = None):
    """
    Flask 애플리케이션 팩토리 함수.
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False
    # 쿼리 결과의 정렬 순서를 유지합니다.
    app.json.sort_keys = False

    use_mock_services = app.config.get('USE_MOCK_SERVICES', False)

    # =====================================================================================
    # 4. 외부 서비스 초기화
    # =====================================================================================
    if not use_mock_services and not firebase_admin._apps:
        cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
        if not cred_path or not os.path.exists(cred_path):
            raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
        cred = credentials.Certificate(cred_path)
        firebase_admin.initialize_app(cred, {
            'databaseURL': app.config['FIREBASE_DATABASE_URL']
        })

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    # 5-1. 데이터베이스 서비스
    try:
        reference = InMemoryReference() if use_mock_services else None
        app.services['database'] = RealtimeDatabaseService(reference)
        # 테스트에서는 앱이 여러 번 만들어지므로 종료 훅을 등록하지 않습니다.
        if not app.config.get('TESTING', False):
            atexit.register(app.services['database'].teardown)
        logging.info("Realtime database service initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize realtime database service: {e}")
        raise

    # 5-2. 인증 서비스와 세션
    try:
        if use_mock_services:
            auth_service = MockAuthService()
        else:
            auth_service = FirebaseAuthService(
                api_key=app.config['FIREBASE_WEB_API_KEY'],
                request_uri=app.config['APPLE_REQUEST_URI'],
                timeout=app.config['AUTH_REQUEST_TIMEOUT'],
            )
        app.services['auth_service'] = auth_service
        app.services['auth_session'] = AuthSession(auth_service)
        logging.info("Auth service initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize auth service: {e}")
        raise

    # 5-3. 인증 뷰모델 (프리뷰 설정에서는 로컬 상태만 바꾸는 mock 사용)
    if app.config.get('USE_MOCK_VIEW_MODEL', False):
        view_model = MockAuthViewModel(auth_session=app.services['auth_session'], instant_sign_in=True)
    else:
        view_model = AuthViewModel(auth_service, auth_session=app.services['auth_session'])
    view_model.listen_auth_session()
    app.services['auth_view_model'] = view_model

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(database_bp, url_prefix='/api/db')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(DatabaseServiceError)
    def handle_database_error(err):
        return jsonify(err.to_dict()), err.http_status

    @app.errorhandler(AuthError)
    def handle_auth_error(err):
        return jsonify({"error_code": err.error_code, "message": str(err)}), 401

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        if isinstance(err, HTTPException):
            return err
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
