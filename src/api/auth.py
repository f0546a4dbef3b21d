"""
Auth API Router
Online/offline login, logout and resolved identity for route guards
"""

import logging
from fastapi import APIRouter, Depends

from src.api.dependencies import verify_api_key, get_session_manager
from src.api.exceptions import handle_api_errors, AuthenticationError
from src.api.schemas import LoginRequest, BranchRequest, IdentityResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _identity_response(session_manager) -> IdentityResponse:
    subject = session_manager.current_subject
    if subject is None:
        return IdentityResponse()

    identity = session_manager.identity()
    return IdentityResponse(
        subject_id=subject.get('id'),
        email=subject.get('email'),
        role=identity.role if identity else None,
        branch_id=identity.branch_id if identity else None
    )


@router.post("/login", response_model=IdentityResponse)
@handle_api_errors
async def login(
    request: LoginRequest,
    authenticated: bool = Depends(verify_api_key),
    session_manager=Depends(get_session_manager)
):
    await session_manager.login(request.email, request.password)
    return _identity_response(session_manager)


@router.post("/logout", response_model=IdentityResponse)
@handle_api_errors
async def logout(
    authenticated: bool = Depends(verify_api_key),
    session_manager=Depends(get_session_manager)
):
    session_manager.logout()
    return IdentityResponse()


@router.get("/identity", response_model=IdentityResponse)
@handle_api_errors
async def get_identity(
    authenticated: bool = Depends(verify_api_key),
    session_manager=Depends(get_session_manager)
):
    """Resolved role and branch for the current subject"""
    if session_manager.current_subject is None:
        raise AuthenticationError("Not logged in")
    return _identity_response(session_manager)


@router.put("/branch", response_model=IdentityResponse)
@handle_api_errors
async def set_branch(
    request: BranchRequest,
    authenticated: bool = Depends(verify_api_key),
    session_manager=Depends(get_session_manager)
):
    if session_manager.current_subject is None:
        raise AuthenticationError("Not logged in")
    session_manager.set_branch(request.branch_id)
    return _identity_response(session_manager)


@router.get("/profile")
@handle_api_errors
async def get_profile(
    authenticated: bool = Depends(verify_api_key),
    session_manager=Depends(get_session_manager)
):
    """Last known user, kept across logouts"""
    profile = session_manager.profiles.get_profile()
    return profile.to_dict() if profile else {}
