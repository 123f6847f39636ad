import hashlib
import string

import jwt
import pytest

from sphere_app.core.security import NONCE_CHARSET, generate_nonce, nonce_matches, sha256_hex


def test_generate_nonce():
    nonce = generate_nonce()
    assert len(nonce) == 32
    assert set(nonce) <= set(NONCE_CHARSET)
    assert generate_nonce() != nonce
    with pytest.raises(ValueError):
        generate_nonce(0)


def test_sha256_hex():
    assert sha256_hex("abc") == hashlib.sha256(b"abc").hexdigest()


def test_nonce_matches():
    hashed = sha256_hex("raw-nonce")
    token = jwt.encode({"nonce": hashed}, "secret", algorithm="HS256")
    assert nonce_matches(token, hashed)
    assert not nonce_matches(token, sha256_hex("other"))
    assert not nonce_matches("not-a-jwt", hashed)
    assert not nonce_matches(jwt.encode({"sub": "x"}, "secret", algorithm="HS256"), hashed)


def test_nonce_charset_covers_alphanumerics():
    assert set(string.ascii_letters + string.digits + "-._") == set(NONCE_CHARSET)
    assert len(NONCE_CHARSET) == 65
