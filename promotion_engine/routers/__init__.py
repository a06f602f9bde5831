from fastapi import APIRouter

from promotion_engine.routers import promotion


router = APIRouter()

router.include_router(promotion.router)
