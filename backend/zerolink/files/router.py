"""FastAPI router for media uploads."""
import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from zerolink.errors import UploadFailure

from .schemas import UploadResponse
from .service import BlobStorageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


@router.post("/api/upload", response_model=UploadResponse)
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None),
) -> UploadResponse:
    """Upload an image or video for a sendMedia message.

    Supported file types: jpeg, png, gif, mp4, webm (configurable), up to
    10MB by default.

    Returns:
        UploadResponse with the public file URL.

    Raises:
        HTTPException 400: No file, or a disallowed type.
        HTTPException 413: File exceeds the size limit.
        HTTPException 500: Storage failed.
    """
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await file.read()
    mime_type = file.content_type or "application/octet-stream"

    service = BlobStorageService.get_instance()
    try:
        url = await service.upload_blob(
            content=content,
            mime_type=mime_type,
            filename=file.filename or "",
            base_url=str(request.base_url),
        )
    except UploadFailure as e:
        logger.warning(f"Upload rejected ({e.status_code}): {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return UploadResponse(fileUrl=url)


@router.get("/uploads/{filename}")
async def download_file(filename: str):
    """Serve a stored blob.

    Raises:
        HTTPException 404: If the file is not found.
    """
    path = BlobStorageService.get_instance().get_path(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path=path)
