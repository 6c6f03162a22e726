"""
User routes - The authenticated caller's profile.
"""

from fastapi import APIRouter, Depends

from supportdesk.api.dependencies import get_auth_service, get_current_claims
from supportdesk.models.api import UserResponse
from supportdesk.models.domain import TokenClaims
from supportdesk.services.auth import AuthService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse, response_model_by_alias=True)
async def get_me(
    claims: TokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Current user profile."""
    return await auth_service.get_profile(claims.sub)
