from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from database import engine
from errors import register_error_handlers
from services.email_service import SmtpMailer
from utils.logger_factory import new_logger, redact_body
from utils.upload_storage import UPLOADS_DIR


@asynccontextmanager
async def lifespan(app: FastAPI):
    log = new_logger("lifespan")
    app.state.mailer = SmtpMailer.from_env()
    log.info(f"Mail transport ready [{app.state.mailer.host}:{app.state.mailer.port}]")
    yield
    app.state.mailer.close()
    engine.dispose()
    log.info("Mail transport closed and database engine disposed")


app = FastAPI(title="Tutor Profiles API", lifespan=lifespan)


@app.middleware("http")
async def log_request_body(request: Request, call_next):
    log = new_logger("log_request_body")
    log.info(f"INCOMING REQUEST: {request.method} {request.url}")
    if request.method != "OPTIONS":  # Skip CORS preflight
        body = await request.body()

        # Check content type to avoid logging binary data
        content_type = request.headers.get("content-type", "")
        if "multipart/form-data" in content_type:
            # Multipart bodies carry passwords and images; log only that they exist
            log.info(f"Request body ({request.method} {request.url.path}): multipart/form-data (content excluded from logs)")
        elif len(body) > 0:
            log.info(f"Request body ({request.method} {request.url.path}): {redact_body(body)}")
    # Starlette caches the body read above, so the route can still read it
    response = await call_next(request)
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/")
def root():
    return {"message": "Tutor Profiles API deployed."}

from api.verification_code import router as verification_code_router
from api.password_reset import router as password_reset_router
from api.profiles import router as profiles_router
from api.healthcheck import router as health_router

app.include_router(verification_code_router, prefix="/api")
app.include_router(password_reset_router, prefix="/api")
app.include_router(profiles_router, prefix="/api")
app.include_router(health_router, prefix="/api")

# Uploaded photos; the folder is created on first upload
app.mount("/uploads", StaticFiles(directory=UPLOADS_DIR, check_dir=False), name="uploads")
