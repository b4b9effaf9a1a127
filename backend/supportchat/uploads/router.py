"""FastAPI router for image uploads."""
import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from .service import ImageStorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])


@router.post("/upload")
async def upload_image(image: UploadFile = File(...)) -> dict:
    """Upload a chat image.

    The returned ``imageUrl`` is what clients send with ``send-image``.

    Raises:
        HTTPException 400: Not an image, or larger than the configured limit.
        HTTPException 500: If the file could not be written.
    """
    content = await image.read()
    mime_type = image.content_type or "application/octet-stream"

    service = ImageStorageService.get_instance()
    try:
        image_url = service.save_image(image.filename or "upload", content, mime_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error(f"Image upload failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload image")

    return {"success": True, "imageUrl": image_url}
