# sphere_app/api/auth/routes.py

import logging
from flask import Blueprint, request, jsonify, current_app
from marshmallow import ValidationError

from sphere_app.api.auth.schemas import (
    CompleteSignInSchema,
    ProfileUpdateSchema,
    SessionResponseSchema,
    SignInRequestResponseSchema,
)
from sphere_app.core.exceptions import AuthError
from sphere_app.models.credential import CredentialRequest

auth_bp = Blueprint('auth_bp', __name__)


def _session_response(status: int = 200):
    view_model = current_app.services['auth_view_model']
    return jsonify(SessionResponseSchema().dump(view_model.state())), status


@auth_bp.route('/session', methods=['GET'])
def get_session():
    """현재 로그인 상태(is_logged_in, user)를 반환합니다."""
    return _session_response()


@auth_bp.route('/sign-in/begin', methods=['POST'])
def begin_sign_in():
    """새 nonce를 만들고 Apple 로그인 요청에 넣을 scope와 nonce 해시를 반환합니다."""
    view_model = current_app.services['auth_view_model']
    sign_in_request = view_model.begin_sign_in(CredentialRequest())
    return jsonify(SignInRequestResponseSchema().dump(sign_in_request)), 200


@auth_bp.route('/sign-in/complete', methods=['POST'])
def complete_sign_in():
    """
    Apple 로그인 결과를 뷰모델에 전달합니다.
    로그인 실패는 뷰모델에서 로그로 남고, 응답에는 변경되지 않은 세션 상태가 담깁니다.
    """
    view_model = current_app.services['auth_view_model']
    try:
        result = CompleteSignInSchema().load(request.get_json() or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    view_model.complete_sign_in(result)
    return _session_response()


@auth_bp.route('/sign-out', methods=['POST'])
def sign_out():
    view_model = current_app.services['auth_view_model']
    view_model.sign_out()
    return _session_response()


@auth_bp.route('/me', methods=['PATCH'])
def update_me():
    """로그인된 사용자의 표시 이름 또는 이메일을 변경합니다."""
    view_model = current_app.services['auth_view_model']
    try:
        data = ProfileUpdateSchema().load(request.get_json() or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    try:
        if 'display_name' in data:
            view_model.update_name(data['display_name'])
        if 'email' in data:
            view_model.update_email(data['email'])
    except AuthError as e:
        logging.warning(f"프로필 변경 실패: {e}")
        return jsonify({"error_code": e.error_code, "message": str(e)}), 401
    return _session_response()
