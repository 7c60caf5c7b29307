"""Bearer-token principal extraction for the HTTP interface."""

import logging

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import ValidationError

from taskboard.core.config import settings
from taskboard.core.errors import UnauthenticatedError
from taskboard.domain.user import Principal


logger = logging.getLogger(__name__)

_TOKEN_SALT = "taskboard-principal"


def _serializer() -> URLSafeTimedSerializer:
    secret = settings.require_credential("secret_key", "Token signing")
    return URLSafeTimedSerializer(secret, salt=_TOKEN_SALT)


def issue_token(principal: Principal) -> str:
    """Sign a principal into a bearer token."""
    return _serializer().dumps(principal.model_dump(mode="json"))


def read_token(token: str) -> Principal:
    """Verify a bearer token and return the principal it carries.

    Raises:
        UnauthenticatedError: If the token is expired, tampered with or malformed
    """
    try:
        payload = _serializer().loads(token, max_age=settings.token_max_age_seconds)
    except SignatureExpired as e:
        raise UnauthenticatedError("Token has expired") from e
    except BadSignature as e:
        raise UnauthenticatedError("Invalid token") from e

    try:
        return Principal.model_validate(payload)
    except ValidationError as e:
        raise UnauthenticatedError("Invalid token payload") from e


async def get_current_principal(request: Request) -> Principal:
    """FastAPI dependency resolving the acting principal from the Authorization header."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        logger.warning("auth_missing_token", extra={"path": request.url.path})
        raise UnauthenticatedError("Missing bearer token")

    try:
        return read_token(token.strip())
    except UnauthenticatedError:
        logger.warning("auth_invalid_token", extra={"path": request.url.path})
        raise
