import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .db import Base, engine
from .errors import DecodeError, GetPathError
from .settings import settings
from .routers import health, api, session

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="GetPath API")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.include_router(health.router)
app.include_router(api.router)
app.include_router(session.router)


@app.exception_handler(GetPathError)
async def getpath_error_handler(request: Request, exc: GetPathError):
	if isinstance(exc, DecodeError):
		# Raw reply stays in the logs only
		logger.error("Decode failure on %s; raw provider text: %s", request.url.path, exc.raw)
	elif exc.status_code >= 500:
		logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.details or exc.message)
	return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
	# Missing or malformed fields are reported as 400 like the other input errors
	return JSONResponse(status_code=400, content={"error": "Invalid request", "details": str(exc.errors())})


@app.get("/", include_in_schema=False)
async def root():
	return PlainTextResponse("GetPath API is running")


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	if settings.use_mock_ai:
		logger.info("USE_MOCK_AI is set; serving canned AI responses")
