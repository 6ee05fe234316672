from fastapi import APIRouter
from circle_calls.api import calls

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


router.include_router(calls.router)
