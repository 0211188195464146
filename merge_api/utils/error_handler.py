"""
Maps merge failures onto HTTP responses.

The body is the wire error shape {code, message, details?}.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from merge_api.services.errors import MergeFailure

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
	"NO_IMAGES": 400,
	"INVALID_OPTIONS": 400,
	"UNSUPPORTED_FORMAT": 415,
	"DECODE_FAILED": 422,
	"OUTPUT_TOO_LARGE": 413,
	"INTERNAL_ERROR": 500,
}


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
	body: Dict[str, Any] = {"code": code, "message": message}
	if details:
		body["details"] = details
	return body


def create_error_response(
	code: str,
	message: str,
	details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
	status_code = STATUS_BY_CODE.get(code, 500)
	return JSONResponse(status_code=status_code, content=error_body(code, message, details))


def handle_merge_failure(error: MergeFailure) -> JSONResponse:
	if error.code == "INTERNAL_ERROR":
		logger.error(f"{error.__class__.__name__}: {error.message}")
	else:
		logger.info(f"Merge rejected [{error.code}]: {error.message}")
	return create_error_response(error.code, error.message, error.details)


async def _merge_failure_handler(request: Request, exc: MergeFailure) -> JSONResponse:
	return handle_merge_failure(exc)


def register_error_handlers(app: FastAPI) -> None:
	app.add_exception_handler(MergeFailure, _merge_failure_handler)
