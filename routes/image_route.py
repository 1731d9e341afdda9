"""FastAPI routes for image analysis, uploads, and serving stored images."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.image_controller import analyze_image, get_upload, upload_image
from utils.errors import RelayError

router = APIRouter(tags=["images"])


class AnalyzeImageRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	message: Optional[str] = None
	image_url: Optional[str] = Field(default=None, alias="imageUrl")
	image_base64: Optional[str] = Field(default=None, alias="imageBase64")
	thread_id: Optional[str] = Field(default=None, alias="threadId")


class UploadImageRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	image_base64: Optional[str] = Field(default=None, alias="imageBase64")
	file_name: Optional[str] = Field(default=None, alias="fileName")


@router.post("/analyze-image")
async def post_analyze_image(request: Request, payload: AnalyzeImageRequest):
	"""Ask the assistant about an image given as a URL or base64 data."""
	try:
		return await analyze_image(
			request,
			message=payload.message,
			image_url=payload.image_url,
			image_base64=payload.image_base64,
			thread_id=payload.thread_id,
		)
	except (HTTPException, RelayError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/upload-image")
async def post_upload_image(request: Request, payload: UploadImageRequest):
	"""Store a base64 image and return its public URL."""
	try:
		return await upload_image(request, payload.image_base64, payload.file_name)
	except (HTTPException, RelayError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/uploads/{filename}")
async def get_uploaded_image(request: Request, filename: str):
	"""Return the bytes of a stored image."""
	return await get_upload(request, filename)
