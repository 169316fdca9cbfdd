from fastapi import APIRouter

from app.api.posts.routes import router as posts_router
from app.api.proxy.routes import router as proxy_router

router = APIRouter()
router.include_router(posts_router)
router.include_router(proxy_router)
