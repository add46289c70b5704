"""
Unit tests for bearer token decoding and scope extraction.

Run: pytest tests/unit/test_security.py -v
"""

import time

import jwt

from product_composite.core.config import Settings
from product_composite.core.security import decode_token, token_scopes

KEY = "unit-test-secret-key-that-is-long-enough"


def _settings(**overrides) -> Settings:
    return Settings(JWT_KEY=KEY, **overrides)


class TestTokenScopes:

    def test_space_separated_scope_claim(self):
        assert token_scopes({"scope": "openid product:read product:write"}) == {"openid", "product:read", "product:write"}

    def test_scp_claim_as_list_or_string(self):
        assert token_scopes({"scp": ["product:read"]}) == {"product:read"}
        assert token_scopes({"scp": "product:write"}) == {"product:write"}

    def test_no_scopes(self):
        assert token_scopes({"sub": "writer"}) == set()


class TestDecodeToken:

    def test_valid_token(self):
        token = jwt.encode({"sub": "writer", "scope": "product:read"}, KEY, algorithm="HS256")
        assert decode_token(token, _settings())["sub"] == "writer"

    def test_expired_token(self):
        token = jwt.encode({"sub": "writer", "exp": int(time.time()) - 60}, KEY, algorithm="HS256")
        assert decode_token(token, _settings()) is None

    def test_wrong_key(self):
        token = jwt.encode({"sub": "writer"}, "another-secret-key-that-is-long-enough", algorithm="HS256")
        assert decode_token(token, _settings()) is None

    def test_issuer_and_audience_are_checked_when_configured(self):
        settings = _settings(JWT_ISSUER="http://auth-server", JWT_AUDIENCE="product-composite")
        good = jwt.encode({"sub": "w", "iss": "http://auth-server", "aud": "product-composite"}, KEY, algorithm="HS256")
        bad = jwt.encode({"sub": "w", "iss": "http://elsewhere", "aud": "product-composite"}, KEY, algorithm="HS256")

        assert decode_token(good, settings) is not None
        assert decode_token(bad, settings) is None
