"""Identity provider access token verification against the provider's JWKS."""

from functools import lru_cache

import jwt

from coach.config.settings import get_settings


@lru_cache()
def get_jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


def verify_token(token: str) -> dict:
    """Decode and validate an access token. Raises jwt.PyJWTError subclasses."""
    settings = get_settings()
    if not settings.AZURE_TENANT_ID or not settings.AZURE_CLIENT_ID:
        raise RuntimeError("Azure AD environment variables not set.")
    signing_key = get_jwks_client(settings.jwks_url).get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        audience=settings.token_audience,
        issuer=settings.token_issuer,
    )


def unverified_claims(token: str) -> dict:
    """Read claims without checking the signature. Only for tokens we just received."""
    return jwt.decode(token, options={"verify_signature": False})
