import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from merge_api import __version__
from merge_api.config import EngineSettings
from merge_api.routers.health import router as health_router
from merge_api.routers.merge_images import router as merge_router
from merge_api.services.engine import get_engine
from merge_api.utils.error_handler import register_error_handlers

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
	logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_app(settings: EngineSettings = None) -> FastAPI:
	settings = settings or EngineSettings.from_env()
	configure_logging(settings.log_level)
	# first call fixes the process-wide engine settings
	get_engine(settings)

	app = FastAPI(title="Photo Merge - Image Merge API", version=__version__)

	# CORS (adjust origins in production)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=False,
		allow_methods=["*"],
		allow_headers=["*"],
		expose_headers=["X-Image-Width", "X-Image-Height"],
	)

	register_error_handlers(app)

	# Routers
	app.include_router(health_router)
	app.include_router(merge_router)

	return app


app = create_app()


if __name__ == "__main__":
	# Local dev server: uvicorn merge_api.main:app --reload
	import uvicorn

	uvicorn.run("merge_api.main:app", host="0.0.0.0", port=8000, reload=True)
