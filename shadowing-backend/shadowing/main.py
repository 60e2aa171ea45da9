from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shadowing.core.settings import settings
from shadowing.core.logging import setup_logging
from shadowing.api.router import router
from shadowing.db.session import engine
from shadowing.db.base import Base
from shadowing.workers.queue import shutdown
import shadowing.models  # noqa: F401  registers tables on Base.metadata

setup_logging(level=settings.log_level, structured=settings.log_structured)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    shutdown(wait=False)


app = FastAPI(title="Shadowing Backend", version="0.1.0", lifespan=lifespan)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.include_router(router)
