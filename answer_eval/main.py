# answer_eval/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from answer_eval.api.v1.endpoints import evaluations, health, questions, submissions
from answer_eval.core.config import settings
from answer_eval.core.errors import PipelineError
from answer_eval.core.logging_config import setup_logging
from answer_eval import init_db

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "error": {"code": exc.code, "details": exc.details},
        },
    )


@app.on_event("startup")
def on_startup():
    init_db()


app.include_router(submissions.router, prefix="/api/v1")
app.include_router(evaluations.router, prefix="/api/v1")
app.include_router(questions.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")
