import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .cache import rebuild_dataset
from .db import Base, engine, ensure_schema
from .settings import settings
from .routers import auth
from .routers import quiz
from .routers import stats

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
	# No framing, no MIME sniffing, no referrer, no caching of API responses
	"X-Frame-Options": "DENY",
	"X-Content-Type-Options": "nosniff",
	"Content-Security-Policy": "frame-ancestors 'none'",
	"Referrer-Policy": "no-referrer",
	"Cache-Control": "private, no-store, no-cache, must-revalidate, proxy-revalidate",
}

app = FastAPI(title="Pokemon Quiz API")
app.include_router(auth.router)
app.include_router(quiz.router)
app.include_router(stats.router)

_allow_origins = [settings.frontend_url] if settings.frontend_url else ["http://localhost:3000", "http://localhost:3001"]
app.add_middleware(
	CORSMiddleware,
	allow_origins=_allow_origins,
	allow_methods=["GET", "POST"],
	allow_headers=["Origin", "Content-Type", "Authorization"],
	allow_credentials=True,
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
	response = await call_next(request)
	for name, value in SECURITY_HEADERS.items():
		response.headers[name] = value
	return response


@app.get("/info")
def root():
	return {"status": "ok"}


@app.on_event("startup")
async def startup_event():
	if not settings.jwt_secret_key:
		raise RuntimeError("FATAL: JWT_SECRET_KEY environment variable is not set.")
	# Initialize DB schema; failure to open the database is fatal
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	dataset = await rebuild_dataset()
	logger.info("Serving %d Pokemon across %d categories", len(dataset), len(dataset.categories))
