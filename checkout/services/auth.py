# checkout/services/auth.py
from dataclasses import dataclass

import jwt
from fastapi import Request

from checkout.domain.errors import AuthError
from checkout.utils import settings


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str | None = None
    name: str | None = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class JWTAuthenticator:
    """
    Reads the caller's identity from ``Authorization: Bearer <jwt>``
    (falls back to ``x-auth-token``). Tokens are issued elsewhere; this only verifies.
    """

    def __init__(self, secret: str | None = None, algorithm: str | None = None):
        self.secret = secret or settings.JWT_SECRET
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    @staticmethod
    def _token_from(request: Request) -> str | None:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header[7:].strip() or None
        return request.headers.get("x-auth-token")

    def identify(self, request: Request) -> Identity:
        token = self._token_from(request)
        if not token:
            raise AuthError("Not authorized to access this route")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthError("Session expired")
        except jwt.InvalidTokenError:
            raise AuthError("Not authorized to access this route")

        user_id = payload.get("userId") or payload.get("sub")
        if not user_id:
            raise AuthError("Token has no user id")

        return Identity(
            user_id=str(user_id),
            email=payload.get("email"),
            name=payload.get("name"),
            role=payload.get("role") or "user",
        )
