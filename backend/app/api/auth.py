"""
Authentication API endpoints
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.models import LoginRequest
from app.api.dependencies import (
    AUTH_COOKIE,
    get_secret_key,
    get_store,
    raise_for_error,
    set_auth_cookie,
    verify_token,
)
from app.services.metadata_repository import MetadataStore
from common.security import create_session_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"]
)


@router.post("/login")
def login(
    request: LoginRequest,
    response: Response,
    store: MetadataStore = Depends(get_store),
    secret: str = Depends(get_secret_key)
) -> Dict[str, str]:
    """
    Verify credentials and issue a session cookie

    Raises:
        HTTPException: 400 on unknown email or wrong password
    """
    try:
        user = store.find_user_by_email(request.email)
        if user is None or not verify_password(request.password, user.password_hash):
            logger.info("Rejected login attempt")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Credentials")

        set_auth_cookie(response, create_session_token(user.id, secret))
        logger.info(f"User logged in: {user.id}")
        return {"userId": user.id}
    except Exception as e:
        raise_for_error(e, "log in")


@router.post("/logout")
def logout(response: Response) -> Dict[str, str]:
    response.delete_cookie(AUTH_COOKIE)
    return {"message": "Logged out"}


@router.get("/validate-token")
def validate_token(user_id: str = Depends(verify_token)) -> Dict[str, str]:
    return {"userId": user_id}
