# app/main.py
from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv

# 루트 .env 로딩 (Settings 생성 전에 한 번에)
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from app.core.config import get_settings  # noqa: E402
from app.core.errors import install_error_handlers  # noqa: E402
from app.core.logging_config import setup_logging  # noqa: E402
from app.db.session import create_all_tables  # noqa: E402
from app.routers import health, task, user  # noqa: E402

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.auto_create_tables:
        create_all_tables()
        logger.info("tables ensured (AUTO_CREATE_TABLES=true)")
    yield


app = FastAPI(title="Task Tracker API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
install_error_handlers(app)

# 라우터 등록: /api/* 와 bare 경로 둘 다 제공
app.include_router(health.router)
for prefix in ("/api", ""):
    app.include_router(task.router, prefix=f"{prefix}/tasks", include_in_schema=bool(prefix))
    app.include_router(user.user_router, prefix=f"{prefix}/users", include_in_schema=bool(prefix))
