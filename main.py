"""
Scorebook - Cricket League Scoring API
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scorebook import __version__
from scorebook.config import settings, configure_logging
from scorebook.database import init_db
from scorebook.errors import ScorebookError
from scorebook.api.approval import router as approval_router
from scorebook.api.balls import router as balls_router

configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title="Scorebook",
    description="Cricket league match approvals and ball-by-ball scoring API",
    version=__version__,
)

# CORS origins - configurable via environment variable
default_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

# Add custom origins from environment (comma-separated)
if settings.CORS_ORIGINS:
    default_origins.extend([o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=default_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(approval_router, prefix="/api")
app.include_router(balls_router, prefix="/api")


@app.exception_handler(ScorebookError)
def scorebook_error_handler(request: Request, exc: ScorebookError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
def startup_event():
    """Initialize database on startup"""
    init_db()


@app.get("/")
def root():
    """Health check endpoint"""
    return {
        "name": "Scorebook API",
        "version": __version__,
        "status": "running",
    }


@app.get("/api/health")
def health_check():
    """API health check"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
