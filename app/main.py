from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from app.core.config import settings
from app.core.errors import DataServiceError, NotFoundError
from app.core.logging_config import configure_logging
from app.routers import badges, courses, gamification, labs, quizzes
from app.services.lab_service import LabError
from app.services.quiz_service import QuizStateError, quiz_runs

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s %s starting", settings.app_name, settings.version)
    yield
    # no countdown may outlive the server
    quiz_runs.close_all()


# Create FastAPI instance
app = FastAPI(
    title=settings.app_name,
    description="Gamified e-learning API: courses, quizzes, badges, leaderboards and virtual labs",
    version=settings.version,
    lifespan=lifespan,
)

# CORS middleware for the web dashboards
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.include_router(courses.router, prefix="/courses", tags=["Courses"])
app.include_router(badges.router, prefix="/badges", tags=["Badges"])
app.include_router(quizzes.router, prefix="/quizzes", tags=["Quizzes"])
app.include_router(labs.router, prefix="/labs", tags=["Labs"])
app.include_router(gamification.router, prefix="/gamification", tags=["Gamification"])


@app.exception_handler(DataServiceError)
async def data_service_error_handler(request: Request, exc: DataServiceError):
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "The data service is unavailable, please try again"},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(QuizStateError)
async def quiz_state_handler(request: Request, exc: QuizStateError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(LabError)
async def lab_error_handler(request: Request, exc: LabError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.app_name}!",
        "version": settings.version,
        "docs": "/docs",
        "status": "ready_to_learn"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "courses": "ready",
            "quizzes": "ready",
            "labs": "ready",
            "gamification": "active"
        },
        "active_quiz_runs": len(quiz_runs),
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
