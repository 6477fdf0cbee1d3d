from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import time

from .config.settings import settings
from .routes.payment_routes import router as payment_router
from .services.settlement_service import settlement_service

# Create logs directory if it doesn't exist
log_dir = Path(settings.LOG_DIR)
log_dir.mkdir(exist_ok=True)

# Configure the package logger so every module's logger shares the handlers
logger = logging.getLogger("checkout_payments")
logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

# Create formatters
formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

if not logger.handlers:
    # File handler for app.log
    file_handler = RotatingFileHandler(
        log_dir / 'app.log',
        maxBytes=10485760,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

# Initialize FastAPI app
app = FastAPI(
    debug=settings.DEBUG,
    title="Checkout Payments Sandbox API",
    description="Sandbox settlement endpoints for the storefront checkout payment methods",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    # Headers are not logged: they carry bearer tokens
    logger.info(f"Incoming request: {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Request error: {str(e)}")
        raise

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(f"Completed request: {request.method} {request.url.path} - Status: {response.status_code} - Time: {process_time:.4f}s")

    return response

# Include routers
app.include_router(payment_router, prefix="/api", tags=["payments"])

# Demo order for the sandbox checkout page
settlement_service.seed_demo_order()

@app.get("/api")
async def root():
    """API index"""
    return {
        "message": "Checkout Payments Sandbox API is running",
        "version": "1.0.0",
        "endpoints": {
            "stripe": "POST /api/payments/stripe",
            "paypal": "POST /api/payments/paypal",
            "promptpay": "POST /api/payments/promptpay",
            "confirm": "POST /api/payments/confirm",
            "status": "GET /api/payments/{order_id}/status"
        }
    }

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "checkout-payments"}

@app.get("/api/health")
async def api_health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "checkout-payments"}

# Error handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request payload: {exc.errors()}")
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request payload"})

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})

if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Checkout Payments Sandbox API server")
    uvicorn.run(
        "checkout_payments.app:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
