"""
User API endpoints
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.models import RegisterRequest, User, UserPublic
from app.api.dependencies import get_secret_key, get_store, raise_for_error, set_auth_cookie, verify_token
from app.services.metadata_repository import DuplicateRecordError, MetadataStore
from common.security import create_session_token, hash_password

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["users"]
)


@router.post("/register")
def register(
    request: RegisterRequest,
    response: Response,
    store: MetadataStore = Depends(get_store),
    secret: str = Depends(get_secret_key)
) -> Dict[str, str]:
    """
    Register a user and log them in

    Raises:
        HTTPException: 400 when the email is already registered
    """
    try:
        user = store.create_user(User(
            id="",
            email=request.email,
            password_hash=hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
        ))
    except DuplicateRecordError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with provided email already exists"
        )
    except Exception as e:
        raise_for_error(e, "register user")

    set_auth_cookie(response, create_session_token(user.id, secret))
    return {"message": "User registered successfully", "userId": user.id}


@router.get("/me", response_model=UserPublic)
def get_me(user_id: str = Depends(verify_token), store: MetadataStore = Depends(get_store)) -> UserPublic:
    """Profile of the authenticated user"""
    try:
        user = store.get_user(user_id)
        return UserPublic(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )
    except Exception as e:
        raise_for_error(e, "get current user")
