import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from bot.config import get_settings
from bot.db.session import create_db_engine, create_session_factory, init_db
from bot.services.errors import OrderError
from bot.services.notification_service import TelegramSender

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Team Orders API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    settings = get_settings()
    app.state.settings = settings
    app.state.engine = create_db_engine(settings.database_url)
    await init_db(app.state.engine)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.sender = TelegramSender.from_token(settings.bot_token, settings.webapp_url) if settings.bot_token else None
    if app.state.sender is None:
        logger.warning("BOT_TOKEN is not set, notifications are disabled")


@app.on_event("shutdown")
async def shutdown():
    if app.state.sender:
        await app.state.sender.close()
    await app.state.engine.dispose()


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ─── ROUTES ──────────────────────────────────────────────
from api.routes.auth import router as auth_router
from api.routes.orders import router as orders_router
from api.routes.projects import router as projects_router
from api.routes.cron import router as cron_router

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(projects_router)
app.include_router(cron_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run("api.main:app", host=settings.api_host, port=settings.api_port)
