# sphere_app/core/security.py
import hashlib
import secrets

import jwt

NONCE_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-._"


def generate_nonce(length: int = 32) -> str:
    """Apple 로그인 요청에 묶을 일회용 nonce 문자열을 생성합니다."""
    if length <= 0:
        raise ValueError("nonce 길이는 1 이상이어야 합니다.")
    return ''.join(secrets.choice(NONCE_CHARSET) for _ in range(length))


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


def decode_identity_token(identity_token: str) -> dict:
    """
    Apple identity token(JWT)의 claim을 읽습니다.
    서명 검증은 Firebase 인증 서버가 수행하므로 여기서는 하지 않습니다.
    """
    return jwt.decode(identity_token, options={"verify_signature": False})


def nonce_matches(identity_token: str, hashed_nonce: str) -> bool:
    try:
        claims = decode_identity_token(identity_token)
    except jwt.PyJWTError:
        return False
    token_nonce = claims.get('nonce')
    return token_nonce is not None and secrets.compare_digest(str(token_nonce), hashed_nonce)
