import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from prophet.api.analyze import router as analyze_router
from prophet.api.attack import router as attack_router
from prophet.api.simulate import router as simulate_router
from prophet.api.streaming import get_gateway, close_gateway
from prophet.core.config import CORS_ORIGINS, LOG_LEVEL
from prophet.utils.logging_config import setup_logging

setup_logging(level=LOG_LEVEL)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Prophet API starting | inference_available=%s", get_gateway().is_available())
    yield
    await close_gateway()


app = FastAPI(title="Prophet Smart-Contract Audit API", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------
class RequestLogMiddleware(BaseHTTPMiddleware):
    """One line per request in, one per response out (SSE responses: time to first byte)."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        route = f"{request.method} {request.url.path}"
        peer = request.client.host if request.client else "-"
        logger.info("--> %s from %s", route, peer)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("<-- %s crashed after %.1fms: %s", route, _elapsed_ms(started), exc)
            raise

        logger.info("<-- %s %d in %.1fms", route, response.status_code, _elapsed_ms(started))
        return response


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyze_router)
app.include_router(attack_router)
app.include_router(simulate_router)


@app.get("/health")
async def health():
    return {"status": "ok", "inference_available": get_gateway().is_available()}


if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
