from fastapi import APIRouter, Depends

from shadowing.services.ytdlp import YtdlpInvoker
from shadowing.workers.runtime import get_invoker

router = APIRouter(prefix="/api", tags=["health"])

@router.get("/health")
def health(invoker: YtdlpInvoker = Depends(get_invoker)):
    version = invoker.check_tool()
    return {"ok": True, "ytdlp_available": version is not None, "ytdlp_version": version}
