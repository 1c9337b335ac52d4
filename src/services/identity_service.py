"""Who is calling: bearer token verification and the actor it identifies."""

import logging
from dataclasses import dataclass
from typing import Any

from authlib.jose import JoseError, jwt

from src.config import AUTH_CONFIG
from src.services.errors import AuthenticationFailure
from src.services.field_normalizer import parse_flag, strip_quotes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: str
    is_admin: bool = False
    email: str | None = None


class IdentityService:
    def __init__(self, secret: str = AUTH_CONFIG["jwt_secret"], audience: str | None = AUTH_CONFIG["audience"]):
        self.secret = secret
        self.audience = audience

    def _claims_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"sub": {"essential": True}}
        if self.audience:
            options["aud"] = {"essential": True, "values": [self.audience]}
        return options

    def verify_token(self, token: str | None) -> Actor:
        """
        Verify an HS256 access token and build the actor it represents.

        Administrator status is read from ``user_metadata.is_admin`` (or the
        camelCase ``isAdmin``).

        Raises:
            AuthenticationFailure: when the token is missing, malformed, expired
                or signed with another key
        """
        if not token:
            raise AuthenticationFailure("Missing or invalid authorization header")
        if not self.secret:
            logger.error("JWT secret is not configured; rejecting token")
            raise AuthenticationFailure("Invalid token")

        try:
            claims = jwt.decode(token, self.secret, claims_options=self._claims_options())
            claims.validate()
        except (JoseError, ValueError) as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise AuthenticationFailure("Invalid token") from e

        actor_id = strip_quotes(claims.get("sub"))
        if not actor_id:
            raise AuthenticationFailure("Invalid token")

        metadata = claims.get("user_metadata") or {}
        is_admin = parse_flag(metadata.get("is_admin")) or parse_flag(metadata.get("isAdmin"))
        return Actor(id=actor_id, is_admin=is_admin, email=claims.get("email"))

    def actor_from_header(self, authorization: str | None) -> Actor:
        if not authorization or not authorization.lower().startswith("bearer "):
            raise AuthenticationFailure("Missing or invalid authorization header")
        return self.verify_token(authorization[len("bearer "):].strip())


# Singleton instance
identity_service = IdentityService()
