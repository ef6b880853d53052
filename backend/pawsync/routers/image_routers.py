# backend/pawsync/routers/image_routers.py
"""
Pet image serving HTTP endpoint.

Role: Thin HTTP adapter over ImageServingService
Responsibilities: Format negotiation input (path + Accept header), mapping
                 ImageServeResult to a Response
"""
# NOTE: THIS FILE SHOULD NOT CONTAIN ANY BUSINESS LOGIC.

from typing import Optional

from fastapi import APIRouter, Header, Response
from fastapi.responses import JSONResponse

from ..dependencies import ImageServingServiceDep
from ..enums import ImageFormat, PetType

router = APIRouter(tags=["images"])


@router.get(
    "/images/{pet_type}/{pet_id}/{image_format}",
    responses={
        200: {"content": {"image/jpeg": {}, "image/webp": {}}},
        202: {"description": "Image is being generated; retry after the given delay"},
        404: {"description": "Pet or image not found"},
    },
)
async def get_pet_image(
    pet_type: PetType,
    pet_id: str,
    image_format: ImageFormat,
    image_serving_service: ImageServingServiceDep,
    accept: Optional[str] = Header(None),
):
    """
    Serve a pet image.

    ``auto`` picks WebP when the Accept header allows it, JPEG otherwise.
    A 202 carries ``Retry-After``; the image is queued for capture.
    """
    result = await image_serving_service.serve(pet_type, pet_id, image_format, accept)

    if result.status_code == 200 and result.content is not None:
        return Response(
            content=result.content,
            media_type=result.media_type,
            headers=result.headers,
        )

    return JSONResponse(
        status_code=result.status_code,
        content={"detail": result.message},
        headers=result.headers,
    )
