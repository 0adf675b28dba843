import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from dependencies import AppContext, build_context, get_context
from api import events, websocket

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立記憶體內的狀態與計時器（排程使用目前的 event loop）
    app.state.context = build_context(settings)
    logger.info(f"{settings.app_name} started, teams={settings.teams}")
    yield
    # Shutdown: 取消所有尚未到期的計時器
    app.state.context.timers.shutdown()


app = FastAPI(
    title="CommitQ API",
    description="Realtime multi-team queue and action item tracking",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events.router)
app.include_router(websocket.router)


@app.get("/")
def root():
    return {"message": "CommitQ API", "status": "ok"}


@app.get("/health")
def health(ctx: AppContext = Depends(get_context)):
    return {
        "status": "healthy",
        "teams": ctx.store.teams(),
        "connections": ctx.broadcaster.connection_count(),
        "active_timers": ctx.timers.active_count(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
