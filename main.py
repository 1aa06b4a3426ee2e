from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from datakit.config import settings
from datakit.database.manager import DatabaseManager
from datakit.response import ResponseModel
from datakit.middleware.logging_md import LoggingMiddleware
from datakit.logging.logger import LogConfig, get_logger
from datakit.exceptions.errors import DataAccessError, translate_db_errors
from datakit.exceptions.handler import BusinessException, global_exception_handler
from catalog import models  # noqa: F401  registers table models
from catalog.books.api.router import router as books_router

# Initialize logging configuration
LogConfig.setup_logging()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    manager = DatabaseManager.get_instance()
    if settings.DB_CREATE_ALL:
        await manager.sql.create_all()
        logger.info("Database tables ensured")
    yield
    await manager.shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Register global exception handlers
app.add_exception_handler(BusinessException, global_exception_handler)
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(DataAccessError, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(LoggingMiddleware)

app.include_router(
    books_router,
    prefix=settings.API_V1_BOOKS_PREFIX,
    tags=["Books"]
)


@app.get("/health")
async def health():
    """Liveness plus a database round trip."""
    with translate_db_errors("health check"):
        await DatabaseManager.get_instance().sql.connect()
    return ResponseModel.success(data={"status": "ok"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
