import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..ai_client import AIClient, get_ai_client
from ..errors import AIClientError

router = APIRouter(prefix="/images", tags=["images"])

logger = logging.getLogger(__name__)


class ImageRequest(BaseModel):
	prompt: str = ""


@router.post("")
async def generate_image(req: ImageRequest, client: AIClient = Depends(get_ai_client)):
	prompt = (req.prompt or "").strip()
	if not prompt:
		return {"success": False, "error": "prompt is required"}
	# The client shows a placeholder on failure, so errors are reported in the body
	try:
		url = await client.generate_image(prompt)
	except (AIClientError, ValueError) as e:
		logger.error("Image generation failed: %s", e)
		return {"success": False, "error": str(e) or "Unknown error"}
	return {"success": True, "url": url}
