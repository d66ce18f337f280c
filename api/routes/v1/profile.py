"""
api/routes/v1/profile.py -- Profile REST endpoints.

Routes:
  GET   /api/v1/me/profile          -- own profile (defaults if never edited)
  PATCH /api/v1/me/profile          -- partial update (upsert); empty body is a no-op
  GET   /api/v1/users/{username}    -- anyone's public profile (no auth), no email
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import ProfilePatch, ProfileResponse, PublicProfileResponse
from api.routes.v1.photos import avatar_urls
from auth.dependencies import require_session
from auth.models import Profile, SessionContext
from auth.store import UserStore
from core.db import translate_integrity_error
from core.errors import NotFound

# Auth policy:
# - GET/PATCH /api/v1/me/profile:   requires auth (require_session)
# - GET /api/v1/users/{username}:   public; the response never carries the email
router = APIRouter()


@router.get("/me/profile", response_model=ProfileResponse)
def get_my_profile(request: Request, session: SessionContext = Depends(require_session)) -> ProfileResponse:
    user_store: UserStore = request.app.state.user_store
    return _profile_to_response(user_store.get_profile(session.user_id))


@router.patch("/me/profile", response_model=ProfileResponse)
def patch_my_profile(
    request: Request,
    body: ProfilePatch,
    session: SessionContext = Depends(require_session),
) -> ProfileResponse:
    """Update only the fields present in the body."""
    user_store: UserStore = request.app.state.user_store
    updates = body.model_dump(exclude_unset=True, mode="json")
    if not updates:
        return _profile_to_response(user_store.get_profile(session.user_id))
    try:
        profile = user_store.upsert_profile(session.user_id, **updates)
    except IntegrityError as exc:
        raise translate_integrity_error(exc) from exc
    return _profile_to_response(profile)


@router.get("/users/{username}", response_model=PublicProfileResponse)
def get_public_profile(request: Request, username: str) -> PublicProfileResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_username(username)
    if user is None:
        raise NotFound("User not found.", code="user_not_found")
    return PublicProfileResponse(
        username=user.username,
        profile=_profile_to_response(user_store.get_profile(user.id)),
        avatar=avatar_urls(user_store.get_avatar_key(user.id)),
    )


def _profile_to_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        display_name=profile.display_name or "",
        gender=profile.gender,
        sexual_pref=profile.sexual_pref,
        bio=profile.bio or "",
        birthdate=profile.birthdate,
        fame_rating=profile.fame_rating or 0,
    )
