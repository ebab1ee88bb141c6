"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.core.config import get_settings
from app.core.logging import setup_logging
from app.core.rate_limit import RateLimiter

# Setup logging
logger = setup_logging("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize services at startup, clean up at shutdown."""
    settings = get_settings()
    try:
        from app.services.chat import ChatService
        from app.services.companion import CompanionRepository
        from app.services.context import ContextAnalyzer
        from app.services.image import ImageGenerationService
        from app.services.llm import LLMClient

        rate_limiter = RateLimiter()
        repository = CompanionRepository(database=settings.firestore_database)
        llm = LLMClient(
            project_id=settings.gcp_project_id,
            location=settings.vertex_ai_location,
            model=settings.llm_model,
        )
        image_service = ImageGenerationService(
            sd_api_url=settings.sd_api_url,
            rate_limiter=rate_limiter,
            images_dir=Path(settings.images_dir),
            timeout_seconds=settings.sd_timeout_seconds,
            max_retries=settings.sd_max_retries,
        )
        chat_service = ChatService(
            repository=repository,
            analyzer=ContextAnalyzer(llm),
            llm=llm,
            image_service=image_service,
            rate_limiter=rate_limiter,
        )

        app.state.rate_limiter = rate_limiter
        app.state.companion_repository = repository
        app.state.image_service = image_service
        app.state.chat_service = chat_service
        logger.info("Services initialized successfully")
    except Exception as exc:
        logger.error(
            "Service initialization failed, running in degraded mode",
            exc_info=True,
            extra={"service": "main", "error_type": type(exc).__name__},
        )
        # Continue without services; endpoints return 503 until fixed

    yield


# Create FastAPI app
app = FastAPI(
    title="Companion Chat",
    description="Chat with AI companions, with per-companion visual memory and SD image generation",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.frontend_port}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
from app.api.chat import router as chat_router  # noqa: E402
from app.api.companions import router as companions_router  # noqa: E402
from app.api.images import router as images_router  # noqa: E402

app.include_router(companions_router)
app.include_router(chat_router)
app.include_router(images_router)

# Serve generated companion images at /images
_images_dir = Path(settings.images_dir)
_images_dir.mkdir(parents=True, exist_ok=True)
app.mount("/images", StaticFiles(directory=str(_images_dir)), name="images")


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports initialization status of the chat / image services.
    Always returns HTTP 200; check `services` for actual status.
    """
    state = request.app.state
    chat_ok = getattr(state, "chat_service", None) is not None
    image_ok = getattr(state, "image_service", None) is not None

    logger.info("Health check requested")
    return {
        "status": "ok",
        "version": app.version,
        "services": {
            "chat": "ok" if chat_ok else "unavailable",
            "image": "ok" if image_ok else "unavailable",
        },
    }
