from fastapi import APIRouter

from merge_api import __version__

router = APIRouter(tags=["health"])


@router.api_route("/health", methods=["GET", "HEAD"], summary="Liveness check")
def health():
	return {"status": "ok", "version": __version__}
