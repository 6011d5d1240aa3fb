"""
Identity Service - verifies externally issued identity tokens.

Tokens are JWTs signed by the identity provider, either with a shared secret
(HS256, AUTH_JWT_SECRET) or with a private key whose public half is
configured (RS256, AUTH_JWT_PUBLIC_KEY). This service never issues tokens.

The account id is the token subject ("sub", falling back to "user_id" or
"uid"); the email claim is used to recognise admins.
"""

from typing import Any, Dict, Optional

import jwt

from scoutreel.config import config
from scoutreel.exceptions import InvalidTokenError


class IdentityService:
    def __init__(
        self,
        secret: Optional[str] = None,
        public_key: Optional[str] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        leeway: Optional[int] = None,
    ):
        self.secret = secret if secret is not None else config.AUTH_JWT_SECRET
        self.public_key = public_key if public_key is not None else config.AUTH_JWT_PUBLIC_KEY
        self.audience = (audience if audience is not None else config.AUTH_JWT_AUDIENCE) or None
        self.issuer = (issuer if issuer is not None else config.AUTH_JWT_ISSUER) or None
        self.leeway = config.AUTH_JWT_LEEWAY_SECONDS if leeway is None else leeway

    def _key_and_algorithms(self):
        if self.public_key:
            return self.public_key, ["RS256"]
        if self.secret:
            return self.secret, ["HS256"]
        raise InvalidTokenError("Identity verification is not configured")

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Decode and validate a token.

        Returns:
            {"account_id": str, "email": str | None, "claims": dict}

        Raises:
            InvalidTokenError: missing, malformed, expired, wrong audience/issuer or bad signature
        """
        if not token:
            raise InvalidTokenError("Missing identity token")

        key, algorithms = self._key_and_algorithms()
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway,
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Identity token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid identity token: {e}")

        account_id = claims.get("sub") or claims.get("user_id") or claims.get("uid")
        if not account_id:
            raise InvalidTokenError("Identity token has no subject")

        email = claims.get("email")
        return {
            "account_id": str(account_id),
            "email": email.lower().strip() if isinstance(email, str) else None,
            "claims": claims,
        }


_identity_service: Optional[IdentityService] = None


def get_identity_service() -> IdentityService:
    global _identity_service
    if _identity_service is None:
        _identity_service = IdentityService()
    return _identity_service


def set_identity_service(service: Optional[IdentityService]) -> None:
    """Install a specific verifier (tests), or None to rebuild from config."""
    global _identity_service
    _identity_service = service
