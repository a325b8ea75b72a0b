import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from .db import Base, engine, get_db, ensure_schema
from .cleanup import purge_stale_sessions
from .errors import ExpressLearningError
from .settings import settings
from .routers import auth, chapters, images, pages, plans

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("express_learning")

app = FastAPI(title="Express Learning API")
app.include_router(pages.router)
app.include_router(auth.router)
app.include_router(plans.router)
app.include_router(chapters.router)
app.include_router(images.router)


@app.exception_handler(ExpressLearningError)
async def express_learning_error_handler(request: Request, exc: ExpressLearningError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error_code)
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error_code": exc.error_code})


@app.get("/", include_in_schema=False)
async def redirect_root_to_docs():
	return RedirectResponse(url="/docs")


@app.get("/info")
def root():
	return {
		"status": "ok",
		"ai_provider": settings.ai_provider,
		"ai_configured": bool(settings.gemini_api_key if settings.ai_provider == "gemini" else settings.openai_api_key),
	}


def _purge_sessions() -> None:
	db = next(get_db())
	try:
		removed = purge_stale_sessions(db)
		if removed:
			logger.info("Purged %d stale sessions", removed)
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			_purge_sessions()
		except Exception:
			logger.exception("Session cleanup failed")


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	# Best-effort session cleanup at startup, then daily
	try:
		_purge_sessions()
	except Exception:
		logger.exception("Session cleanup failed")
	asyncio.create_task(_cleanup_watcher())
