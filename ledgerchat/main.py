from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware
from .config import LOG_FILE, LOG_LEVEL, MQTT_ENABLED, SESSION_SECRET
from .database import engine, Base
from .errors import LoginRequired, StorageError
from .protocols import mqtt_handler
from .routes import users, expenses, chat
from .templating import BASE_DIR
import logging
from datetime import datetime

# ===== Logging Configuration =====
handlers = [logging.StreamHandler()]
if LOG_FILE:
    handlers.insert(0, logging.FileHandler(LOG_FILE, encoding='utf-8'))
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=handlers,
)
logger = logging.getLogger(__name__)

# Create Database Tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if MQTT_ENABLED:
        mqtt_handler.connect()
    yield
    mqtt_handler.disconnect()


app = FastAPI(title="ledgerchat", lifespan=lifespan)

# ===== Request Logging Middleware =====
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = datetime.now()
    response = await call_next(request)
    duration = (datetime.now() - start_time).total_seconds()

    logger.info(f"{request.method} {request.url.path} - {response.status_code} - {duration:.3f}s")
    return response

app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET)

# ===== Error Handling =====
@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"{request.method} {request.url.path} - storage error: {exc}", exc_info=exc.__cause__)
    return PlainTextResponse("Server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"{request.method} {request.url.path} - database error: {exc}", exc_info=exc)
    return PlainTextResponse("Server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

# Routes
app.include_router(users.router, tags=["users"])
app.include_router(expenses.router, tags=["expenses"])
app.include_router(chat.router, tags=["chat"])

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

logger.info("Application started")


if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
