"""
Evidence Stitcher - FastAPI Server
Version: 0.1.0

Hosts one headless Chromium page and exposes the capture engine over HTTP.
"""

import logging
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from playwright.async_api import async_playwright
import uvicorn

from capture_config import CaptureConfig, load_defaults_from_env
from capture_orchestrator import CaptureOrchestrator
from playwright_bridge import PlaywrightPageInspector, PlaywrightViewportCapture
from routes import RouteDependencies, set_dependencies
from routes import capture as capture_routes
from routes import health as health_routes

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Evidence Stitcher API",
    version="0.1.0",
    description="Forensic full-page web capture with integrity hashing"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Add validation error handler to log detailed errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log and return detailed validation errors"""
    logger.error("[VALIDATION ERROR] Request validation failed")
    logger.error(f"[VALIDATION ERROR] URL: {request.url}")
    logger.error(f"[VALIDATION ERROR] Errors: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "detail": exc.errors(),
            "body": exc.body
        }
    )


app.include_router(health_routes.router)
app.include_router(capture_routes.router)

# Browser state (configured on startup)
defaults = load_defaults_from_env()
playwright = None
browser = None


def build_orchestrator_factory(page):
    """Each capture gets a fresh orchestrator bound to the shared page"""
    inspector = PlaywrightPageInspector(page)
    provider = PlaywrightViewportCapture(page)

    def factory(config: Optional[CaptureConfig] = None) -> CaptureOrchestrator:
        return CaptureOrchestrator(inspector, provider, config=config)

    return factory


# Startup and Shutdown Events
@app.on_event("startup")
async def startup_event():
    """Launch the browser and wire route dependencies"""
    global playwright, browser

    logger.info("[Server] Starting Evidence Stitcher v0.1.0")
    logger.info(
        f"[Server] Viewport {defaults.VIEWPORT_WIDTH}x{defaults.VIEWPORT_HEIGHT} "
        f"@{defaults.DEVICE_SCALE_FACTOR}x, headless={defaults.BROWSER_HEADLESS}"
    )

    playwright = await async_playwright().start()
    browser = await playwright.chromium.launch(headless=defaults.BROWSER_HEADLESS)
    context = await browser.new_context(
        viewport={"width": defaults.VIEWPORT_WIDTH, "height": defaults.VIEWPORT_HEIGHT},
        device_scale_factor=defaults.DEVICE_SCALE_FACTOR,
    )
    page = await context.new_page()
    logger.info("[Server] ✅ Browser page ready")

    set_dependencies(RouteDependencies(
        orchestrator_factory=build_orchestrator_factory(page),
        defaults=defaults,
        page=page,
        browser=browser,
    ))


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("[Server] Shutting down Evidence Stitcher...")

    if browser:
        await browser.close()
    if playwright:
        await playwright.stop()

    logger.info("[Server] Shutdown complete")


if __name__ == "__main__":
    logger.info("Starting Evidence Stitcher v0.1.0")
    logger.info(f"Server: http://localhost:{defaults.SERVER_PORT}")
    logger.info(f"API: http://localhost:{defaults.SERVER_PORT}/api")

    uvicorn.run(
        app,
        host=defaults.SERVER_HOST,
        port=defaults.SERVER_PORT,
        log_level="info"
    )
