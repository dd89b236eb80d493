# app/main.py

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import logging

from app.api.auth import router as auth_router
from app.api.task import router as task_router
from app.api.user import router as user_router

from app.core.settings import settings
from app.core.exceptions import BaseAppException
from app.database import init_db

# Логирование
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("TaskFlow")

app = FastAPI(
    title="TaskFlow API",
    version="1.0.0",
    description="Task management backend: tasks, lifecycle, collaboration and time tracking",
)

# Middlewares
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Роутеры
app.include_router(auth_router)
app.include_router(task_router)
app.include_router(user_router)

# Health check & root
@app.get("/", tags=["Health"])
def root():
    return {"status": "TaskFlow API is running!"}

@app.get("/health", tags=["Health"])
def health():
    return {"ok": True}

@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("Starting TaskFlow API")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Stopping TaskFlow API")

# Единый формат ошибок: {"success": false, "message": ..., "error": ...}

def _error_body(message: str, error=None) -> dict:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return body

@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.error})")
        return JSONResponse(status_code=exc.status_code, content=_error_body("Server Error", exc.error))
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error),
        headers=headers,
    )

@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=422, content=_error_body(message, "validation_error"))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=_error_body("Server Error", str(exc)))

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=settings.DEBUG,
    )
