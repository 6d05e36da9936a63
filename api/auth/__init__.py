"""Authentication API endpoints."""

from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status, Depends, Security
from pydantic import BaseModel, Field

from auth import (
    AuthManager, get_auth_manager, get_current_user,
    AuthError, InvalidCredentialsError, UserExistsError
)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

class SignupRequest(BaseModel):
    """Request model for creating an account."""
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

class SigninRequest(BaseModel):
    """Request model for signing in."""
    email: str
    password: str

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignupRequest,
    auth: AuthManager = Depends(get_auth_manager)
):
    """Create an artist account and return a session token."""
    try:
        return await auth.signup(
            request.username.strip(),
            request.email.strip().lower(),
            request.password
        )
    except UserExistsError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists"
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error creating user", "error": str(e)}
        )

@router.post("/signin")
async def signin(
    request: SigninRequest,
    auth: AuthManager = Depends(get_auth_manager)
):
    """Verify credentials and return a session token."""
    try:
        return await auth.signin(request.email.strip().lower(), request.password)
    except InvalidCredentialsError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error signing in", "error": str(e)}
        )

@router.get("/me")
async def me(user: Dict[str, Any] = Security(get_current_user)):
    """Return the authenticated user."""
    return user

# Export the router
__all__ = ['router']
