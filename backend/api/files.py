from fastapi import APIRouter, Depends, HTTPException, Query, Response
from typing import List, Optional
import mimetypes
from constants import HTTPStatus, ROOT_PARENT_ID, THUMBNAIL_SIZES
from config.settings import Settings, get_settings
from dependencies import (
    get_access_control,
    get_blob_storage,
    get_current_user_id,
    get_file_catalog,
    get_file_service,
    get_token,
)
from exceptions import NotFoundError, BlobNotFoundError
from schemas import FileCreate, FileResponse
from services.access_control import AccessControl
from services.file_catalog import FileCatalog
from services.file_service import FileService
from services.interfaces import IBlobStorage
from utils.error_handlers import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/files", response_model=FileResponse, status_code=HTTPStatus.CREATED)
@handle_api_errors("Upload file")
def upload_file(
    body: FileCreate,
    user_id: str = Depends(get_current_user_id),
    files: FileService = Depends(get_file_service)
):
    """
    Create a folder, file or image

    Images get a thumbnail job queued once the entry is stored.

    Raises:
        HTTPException: 401 without a valid token; 400 "Missing name",
            "Missing type", "Missing data", "Parent not found",
            "Parent is not a folder"
    """
    entry = files.upload(
        owner_id=user_id,
        name=body.name,
        kind=body.type,
        parent_id=body.parentId,
        is_public=body.isPublic,
        data_b64=body.data
    )
    return FileResponse.from_entry(entry)


@router.get("/files", response_model=List[FileResponse])
@handle_api_errors("List files")
def list_files(
    parentId: str = Query(ROOT_PARENT_ID),
    page: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    catalog: FileCatalog = Depends(get_file_catalog),
    settings: Settings = Depends(get_settings)
):
    """
    List the caller's entries under a folder

    Query parameters:
    - parentId: Folder id, "0" for the root
    - page: Zero-based page index (settings.page_size entries per page)
    """
    entries = catalog.list_children(user_id, parentId, page=page, page_size=settings.page_size)
    return [FileResponse.from_entry(entry) for entry in entries]


@router.get("/files/{file_id}", response_model=FileResponse)
@handle_api_errors("Get file")
def get_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: FileCatalog = Depends(get_file_catalog)
):
    """
    Get one of the caller's entries

    Raises:
        HTTPException: 404 if absent or owned by someone else
    """
    return FileResponse.from_entry(catalog.get_owned(file_id, user_id))


def _change_visibility(
    file_id: str,
    token: Optional[str],
    user_id: str,
    value: bool,
    catalog: FileCatalog,
    access: AccessControl
) -> FileResponse:
    """Non-owners get the same 404 as a missing id, public entries included."""
    entry = catalog.get(file_id)
    if not access.can_mutate(token, entry):
        raise NotFoundError("file", file_id)
    return FileResponse.from_entry(catalog.set_public(file_id, user_id, value))


@router.put("/files/{file_id}/publish", response_model=FileResponse)
@handle_api_errors("Publish file")
def publish_file(
    file_id: str,
    token: Optional[str] = Depends(get_token),
    user_id: str = Depends(get_current_user_id),
    catalog: FileCatalog = Depends(get_file_catalog),
    access: AccessControl = Depends(get_access_control)
):
    return _change_visibility(file_id, token, user_id, True, catalog, access)


@router.put("/files/{file_id}/unpublish", response_model=FileResponse)
@handle_api_errors("Unpublish file")
def unpublish_file(
    file_id: str,
    token: Optional[str] = Depends(get_token),
    user_id: str = Depends(get_current_user_id),
    catalog: FileCatalog = Depends(get_file_catalog),
    access: AccessControl = Depends(get_access_control)
):
    return _change_visibility(file_id, token, user_id, False, catalog, access)

@router.get("/files/{file_id}/data")
@handle_api_errors("Get file data")
def get_file_data(
    file_id: str,
    size: Optional[str] = None,
    token: Optional[str] = Depends(get_token),
    catalog: FileCatalog = Depends(get_file_catalog),
    access: AccessControl = Depends(get_access_control),
    storage: IBlobStorage = Depends(get_blob_storage)
):
    """
    Serve the bytes of a file, or of one of its thumbnails

    Public entries need no token; private ones only answer their owner.
    A size other than 500, 250 or 100 is ignored and the original is served.

    Raises:
        HTTPException: 404 if absent, not readable by the caller, or the
            requested thumbnail isn't rendered yet; 400 for folders
    """
    entry = catalog.get(file_id)
    if not access.can_read(token, entry):
        raise NotFoundError("file", file_id)
    if entry.is_folder:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="A folder doesn't have content")

    rendition = int(size) if size in {str(s) for s in THUMBNAIL_SIZES} else None
    path = catalog.rendition_path(entry, rendition)
    try:
        content = storage.get(path)
    except BlobNotFoundError:
        raise NotFoundError("file", file_id)

    media_type = mimetypes.guess_type(entry.name)[0] or "application/octet-stream"
    return Response(content=content, media_type=media_type)
