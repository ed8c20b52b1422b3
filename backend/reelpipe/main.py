from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from reelpipe.core.database import create_tables
from reelpipe.core.exceptions import ErrorCode, ReelpipeError
from reelpipe.api.v1 import api_router
import uvicorn
import logging
import asyncio
from reelpipe.core.config import settings

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)

# Keep SQLAlchemy and aiosqlite quiet
logging.getLogger('sqlalchemy.engine').setLevel(logging.ERROR)
logging.getLogger('sqlalchemy.pool').setLevel(logging.ERROR)
logging.getLogger('aiosqlite').setLevel(logging.ERROR)
logging.getLogger('sqlalchemy.dialects').setLevel(logging.ERROR)
logging.getLogger('sqlalchemy.orm').setLevel(logging.ERROR)

app = FastAPI(
    title="Reelpipe API",
    description="Video ingestion and processing status API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

frontend_url = settings.frontend_url
if frontend_url and frontend_url not in allowed_origins:
    allowed_origins.append(frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SENSITIVE_HEADERS = {'authorization', 'cookie', 'x-api-key', 'accesskey', 'authorizationsignature'}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger = logging.getLogger("http")

    if settings.debug:
        logger.debug(f"Received request: {request.method} {request.url}")

        safe_headers = {}
        for key, value in request.headers.items():
            if key.lower() in SENSITIVE_HEADERS:
                safe_headers[key] = f"[FILTERED - {len(value)} chars]"
            elif len(value) > 200:
                safe_headers[key] = f"{value[:200]}...[TRUNCATED - total {len(value)} chars]"
            else:
                safe_headers[key] = value

        logger.debug(f"Headers: {safe_headers}")
    else:
        client_host = request.client.host if request.client else "-"
        logger.info(f"{request.method} {request.url} - {client_host}")

    response = await call_next(request)

    if settings.debug:
        logger.debug(f"Response status: {response.status_code}")

    return response


@app.exception_handler(ReelpipeError)
async def reelpipe_error_handler(request: Request, exc: ReelpipeError):
    logging.getLogger("http").info(f"{request.method} {request.url.path} -> {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(
        status_code=422,
        content={"code": ErrorCode.VALIDATION_ERROR.value, "detail": message},
    )


# Include routers
app.include_router(api_router, prefix="/api/v1")


async def wait_for_database(max_retries=30, retry_interval=2):
    """Wait until the database accepts connections"""
    from reelpipe.core.database import async_engine
    import sqlalchemy

    for attempt in range(max_retries):
        try:
            async with async_engine.connect() as conn:
                await conn.execute(sqlalchemy.text("SELECT 1"))
                logging.info(f"Database connection successful on attempt {attempt + 1}")
                return True
        except Exception as e:
            logging.warning(f"Database connection attempt {attempt + 1} failed: {e}")
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_interval)
            else:
                logging.error("Database connection failed after all retries")
                return False


@app.on_event("startup")
async def startup_event():
    logging.info("Waiting for database connection...")
    if not await wait_for_database():
        logging.error("Failed to connect to database. Exiting.")
        return

    await create_tables()

    if not settings.stream_api_key or not settings.stream_library_id:
        logging.warning("Stream host credentials are not set; uploads and status refreshes will fail")

    logging.info("Application startup completed successfully")


@app.get("/")
async def root():
    return {
        "message": "Reelpipe API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(
        "reelpipe.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        timeout_keep_alive=300,
        access_log=False,
        log_level="warning"
    )
