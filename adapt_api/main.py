import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from adapt_api.api.v1.routes import router as api_v1_router
from adapt_api.config import get_settings
from adapt_api.services.storage import get_blob_storage

# Load environment variables from .env file
print("\n" + "=" * 60)
print("🔧 LOADING ENVIRONMENT CONFIGURATION")
print("=" * 60)

env_path = Path(__file__).parent.parent / ".env"
print(f"Looking for .env file at: {env_path}")

if env_path.exists():
    print("✓ .env file found")
    load_dotenv(dotenv_path=env_path, override=True)
    print("✓ .env file loaded successfully")
else:
    print(f"⚠ .env file not found at: {env_path}")
    print("  Create it with: REPLICATE_API_TOKEN=your_token_here")

token = os.environ.get("REPLICATE_API_TOKEN")
if token:
    print(f"✓ REPLICATE_API_TOKEN loaded: {token[:6]}...")
else:
    print("⚠ REPLICATE_API_TOKEN not set; outpainting providers will fail")

print("=" * 60 + "\n")


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are a plain 400 like every other bad request."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


def create_app() -> FastAPI:
    """
    Application factory for the Aspect-Ratio Adaptation API.

    Keeping this as a separate function makes it easier to extend
    configuration and testing later.
    """
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Aspect-Ratio Adaptation API",
        version="0.1.0",
        description="Adapts finished ad creatives to new placement sizes.",
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    # Public, versioned API routes.
    app.include_router(api_v1_router)

    # Generated assets and temp provider inputs are served from local storage.
    storage = get_blob_storage()
    app.mount("/assets", StaticFiles(directory=str(storage.base_dir)), name="assets")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("adapt_api.main:app", host="0.0.0.0", port=8000, reload=False)
