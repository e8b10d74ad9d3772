from fastapi import APIRouter

from redsys_core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok", "environment": settings.redsys_env}
