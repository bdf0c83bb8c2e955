from fastapi import APIRouter

from cvlens.ai.config import load_ai_config
from cvlens.core.config import settings

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check():
    ai = load_ai_config()
    return {
        "status": "healthy",
        "llm_enabled": ai.enabled,
        "segmentation_strategy": settings.segmentation_strategy if ai.enabled else "heuristic",
    }
