"""
api/routes/v1/photos.py -- Photo slot REST endpoints.

Routes:
  GET    /api/v1/me/photos               -- avatar + gallery ordered by position
  POST   /api/v1/me/avatar               -- upload / replace the avatar (multipart "file"); 201
  POST   /api/v1/me/photos               -- upload a gallery photo (multipart "file"); 201
  DELETE /api/v1/me/photos/{photo_id}    -- delete one photo, compacting the gallery; 204
  PATCH  /api/v1/me/photos/reorder       -- reassign gallery positions; returns the gallery

Every route requires a session and acts on the caller's own photos only.
Another user's photo id answers 404 photo_not_found, exactly like a missing id.

Handlers are plain `def`: FastAPI runs them in its threadpool, so image
decoding and owner-serialized transactions never block the event loop.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile

from api.models import (
    AvatarUrls,
    GalleryResponse,
    PhotoKindEnum,
    PhotoListResponse,
    PhotoResponse,
    ReorderRequest,
)
from auth.dependencies import require_session
from auth.models import SessionContext
from photos.files import LocalFileStore
from photos.models import Photo
from photos.service import PhotoService

# Auth policy: every route below requires auth (require_session) and is
# scoped to session.user_id. Mutations also pass the CSRF check in
# api/middleware.py before reaching the handler.
router = APIRouter()


@router.get("/me/photos", response_model=PhotoListResponse)
def list_photos(request: Request, session: SessionContext = Depends(require_session)) -> PhotoListResponse:
    service: PhotoService = request.app.state.photo_service
    avatar, gallery = service.list_photos(session.user_id)
    return PhotoListResponse(
        avatar=photo_to_response(avatar) if avatar is not None else None,
        gallery=[photo_to_response(p) for p in gallery],
    )


@router.post("/me/avatar", response_model=PhotoResponse, status_code=201)
def upload_avatar(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    session: SessionContext = Depends(require_session),
) -> PhotoResponse:
    """Upload a new avatar. Any previous avatar (row and files) is replaced.

    A first avatar counts toward the 5-photo total and answers 409
    max_photos_reached when the gallery already fills it.
    """
    service: PhotoService = request.app.state.photo_service
    content_type, data = _read_upload(file, service.max_upload_bytes)
    photo = service.upload_avatar(session.user_id, content_type, data)
    return photo_to_response(photo)


@router.post("/me/photos", response_model=PhotoResponse, status_code=201)
def upload_gallery_photo(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    session: SessionContext = Depends(require_session),
) -> PhotoResponse:
    """Upload a gallery photo at the lowest free position (1..5)."""
    service: PhotoService = request.app.state.photo_service
    content_type, data = _read_upload(file, service.max_upload_bytes)
    photo = service.upload_gallery(session.user_id, content_type, data)
    return photo_to_response(photo)


@router.delete("/me/photos/{photo_id}", status_code=204)
def delete_photo(
    request: Request,
    photo_id: int,
    session: SessionContext = Depends(require_session),
) -> Response:
    """Delete a photo. Gallery positions after it shift down by one."""
    service: PhotoService = request.app.state.photo_service
    service.delete(session.user_id, photo_id)
    return Response(status_code=204)


@router.patch("/me/photos/reorder", response_model=GalleryResponse)
def reorder_gallery(
    request: Request,
    body: ReorderRequest,
    session: SessionContext = Depends(require_session),
) -> GalleryResponse:
    """Apply {id, position} pairs. The resulting gallery must be a 1..N permutation."""
    service: PhotoService = request.app.state.photo_service
    gallery = service.reorder(session.user_id, [(item.id, item.position) for item in body.order])
    return GalleryResponse(gallery=[photo_to_response(p) for p in gallery])


# ---------------------------------------------------------------------------
# Helpers (also used by the auth and profile routers)
# ---------------------------------------------------------------------------


def photo_to_response(photo: Photo) -> PhotoResponse:
    return PhotoResponse(
        id=photo.id,
        kind=PhotoKindEnum(photo.kind.value),
        position=int(photo.position) if photo.position is not None else None,
        url=LocalFileStore.public_url(photo.storage_key),
        thumb_url=LocalFileStore.thumb_url(photo.storage_key),
        mime_type=photo.mime_type,
        width=photo.width,
        height=photo.height,
        size_bytes=photo.size_bytes,
    )


def avatar_urls(storage_key: Optional[str]) -> Optional[AvatarUrls]:
    if not storage_key:
        return None
    return AvatarUrls(url=LocalFileStore.public_url(storage_key), thumb_url=LocalFileStore.thumb_url(storage_key))


def _read_upload(file: Optional[UploadFile], limit: int) -> tuple[Optional[str], Optional[bytes]]:
    """Read at most limit + 1 bytes: enough for the service to tell an oversized upload."""
    if file is None:
        return None, None
    try:
        return file.content_type, file.file.read(limit + 1)
    finally:
        file.file.close()
