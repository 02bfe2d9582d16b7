"""Verification of bearer tokens issued by the external auth provider."""

import jwt

from calmme.core import config

REQUIRED_CLAIMS = ["exp", "iat", "sub"]


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": REQUIRED_CLAIMS},
    )
