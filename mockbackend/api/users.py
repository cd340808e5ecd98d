"""
Users service: registration, login, logout and the current caller's profile.
"""

from fastapi import APIRouter, Depends, Response
from typing import Any, Dict, Optional

from .deps import Services, get_current_user, get_services, get_token
from .schemas import LoginRequest, RegisterRequest
from ..core.errors import Unauthorized

router = APIRouter()


@router.post("/register")
def register(request: RegisterRequest, services: Services = Depends(get_services)):
    """Create an account and return it with a fresh accessToken."""
    return services.users.register(request.model_dump())


@router.post("/login")
def login(request: LoginRequest, services: Services = Depends(get_services)):
    return services.users.login(request.model_dump())


@router.get("/logout", status_code=204)
def logout(token: Optional[str] = Depends(get_token), services: Services = Depends(get_services)):
    services.users.logout(token)
    return Response(status_code=204)


@router.get("/me")
def me(user: Optional[Dict[str, Any]] = Depends(get_current_user)):
    """Profile of the signed-in caller."""
    if user is None:
        raise Unauthorized()
    return user
