from fastapi import APIRouter
from shadowing.api.routes.health import router as health
from shadowing.api.routes.videos import router as videos
from shadowing.api.routes.downloads import router as downloads
from shadowing.api.routes.plugin import router as plugin

router = APIRouter()
router.include_router(health)
router.include_router(videos)
router.include_router(downloads)
router.include_router(plugin)
