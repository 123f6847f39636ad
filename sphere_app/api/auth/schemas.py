# sphere_app/api/auth/schemas.py
from marshmallow import Schema, ValidationError, fields, post_load, validates_schema

from sphere_app.models.credential import AppleIDCredential, AuthorizationResult, PersonName


class PersonNameSchema(Schema):
    given_name = fields.Str(allow_none=True, load_default=None)
    family_name = fields.Str(allow_none=True, load_default=None)

    @post_load
    def make_name(self, data, **kwargs):
        return PersonName(**data)


class CompleteSignInSchema(Schema):
    """
    POST /api/auth/sign-in/complete
    Apple 로그인 UI가 돌려준 결과. 성공이면 credential 필드를, 실패면 error만 보냅니다.
    """
    user = fields.Str(load_default=None)
    identity_token = fields.Str(load_default=None)
    authorization_code = fields.Str(allow_none=True, load_default=None)
    email = fields.Email(allow_none=True, load_default=None)
    full_name = fields.Nested(PersonNameSchema, allow_none=True, load_default=None)
    error = fields.Str(load_default=None, metadata={"description": "Apple 로그인 실패 메시지"})

    @validates_schema
    def validate_result(self, data, **kwargs):
        if data.get('error') is None and not data.get('user'):
            raise ValidationError("성공 결과에는 user 필드가 필요합니다.", field_name='user')

    @post_load
    def make_result(self, data, **kwargs):
        if data['error'] is not None:
            return AuthorizationResult.failure(RuntimeError(data['error']))
        if not data['identity_token']:
            # credential 형태가 아니므로 뷰모델에서 추출 실패로 처리됩니다.
            return AuthorizationResult.success({"user": data['user']})
        return AuthorizationResult.success(AppleIDCredential(
            user=data['user'],
            identity_token=data['identity_token'],
            authorization_code=data['authorization_code'],
            email=data['email'],
            full_name=data['full_name'],
        ))


class UserResponseSchema(Schema):
    user_id = fields.Str(required=True)
    display_name = fields.Str(allow_none=True)
    email = fields.Str(allow_none=True)
    custom_fields = fields.Dict()


class SessionResponseSchema(Schema):
    """GET /api/auth/session 응답"""
    is_logged_in = fields.Bool(required=True)
    user = fields.Nested(UserResponseSchema, allow_none=True)


class SignInRequestResponseSchema(Schema):
    """POST /api/auth/sign-in/begin 응답. nonce는 SHA-256 해시입니다."""
    requested_scopes = fields.Method('get_scopes')
    nonce = fields.Str(required=True)

    def get_scopes(self, obj):
        return [scope.value for scope in obj.requested_scopes]


class ProfileUpdateSchema(Schema):
    """PATCH /api/auth/me"""
    display_name = fields.Str()
    email = fields.Email()

    @validates_schema
    def validate_not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError("display_name 또는 email 중 하나는 필요합니다.")
