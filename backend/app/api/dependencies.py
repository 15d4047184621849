"""
Shared API dependencies and error mapping
"""
import os
import logging
from typing import Any, Dict, NoReturn, Optional

from fastapi import Cookie, Depends, Header, HTTPException, Response, status
from pydantic import BaseModel

from app.services.audit_service import AuditTrailService
from app.services.ingestion_service import SatelliteNotDefinedError
from app.services.metadata_repository import (
    DatabaseConnectionError,
    DuplicateRecordError,
    MetadataStore,
    RecordNotFoundError,
)
from common.security import SESSION_TTL_SECONDS, InvalidTokenError, verify_session_token
from common.validators import InvalidQueryError

logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth_token"

# Created on first use so that importing the app never touches AWS
_store: Optional[MetadataStore] = None
_audit_trail: Optional[AuditTrailService] = None


def get_store() -> MetadataStore:
    """Shared metadata store"""
    global _store
    if _store is None:
        try:
            _store = MetadataStore()
        except DatabaseConnectionError as e:
            logger.error(f"Metadata store not available: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Metadata store unavailable"
            )
    return _store


def get_audit_trail() -> Optional[AuditTrailService]:
    """Shared audit trail; None when it cannot be configured"""
    global _audit_trail
    if _audit_trail is None:
        try:
            _audit_trail = AuditTrailService()
        except Exception as e:
            logger.warning(f"Audit trail not available: {e}")
            return None
    return _audit_trail


def get_secret_key() -> str:
    secret = os.getenv("AUTH_SECRET_KEY")
    if not secret:
        logger.error("AUTH_SECRET_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Something went wrong"
        )
    return secret


def verify_token(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None),
    secret: str = Depends(get_secret_key)
) -> str:
    """
    Identity of the caller from the auth_token cookie or a Bearer header

    Returns:
        str: user id

    Raises:
        HTTPException: 401 when the token is missing or invalid
    """
    token = auth_token
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        claims = verify_session_token(token, secret)
    except InvalidTokenError as e:
        logger.warning(f"Rejected session token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return claims["userId"]


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        secure=os.getenv("ENVIRONMENT", "dev") == "prod",
        max_age=SESSION_TTL_SECONDS,
        samesite="lax"
    )


def as_document(model: BaseModel) -> Dict[str, Any]:
    """Wire form of a stored record (camelCase, JSON types)"""
    return model.model_dump(by_alias=True, mode="json")


def raise_for_error(error: Exception, action: str) -> NoReturn:
    """
    Map a service/store exception to an HTTPException

    Rejected queries and undefined satellites become 400, missing records 404
    and store outages 503. Anything unexpected, including records that no
    longer validate, is a logged 500. Internal details are logged, not returned.
    """
    if isinstance(error, HTTPException):
        raise error
    if isinstance(error, RecordNotFoundError):
        logger.debug(f"Not found while trying to {action}: {error}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, DuplicateRecordError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, (InvalidQueryError, SatelliteNotDefinedError)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, DatabaseConnectionError):
        logger.error(f"Database error while trying to {action}: {error}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Metadata store unavailable"
        )
    logger.error(f"Unexpected error while trying to {action}: {error}", exc_info=True)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Something went wrong"
    )
