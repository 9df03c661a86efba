from contextlib import asynccontextmanager

from fastapi import FastAPI

from batch_code_core.logging import configure_logging
from batch_code_core.production_api import router as production_router
from batch_code_core.settings import get_settings

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_output=settings.LOG_JSON, level=settings.LOG_LEVEL)
    yield

app = FastAPI(title="Batch Code Core API", lifespan=lifespan)
app.include_router(production_router)

@app.get("/health")
async def health():
    return {"ok": True}
