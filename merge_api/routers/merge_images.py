from __future__ import annotations

import json
import logging
from typing import List

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from merge_api.services.engine import get_engine
from merge_api.services.formats import HEIC_MESSAGE, categorize_files
from merge_api.services.types import MergeOptions
from merge_api.utils.error_handler import create_error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/merge", tags=["merge"])


def _parse_options(raw: str) -> MergeOptions:
	data = json.loads(raw) if raw and raw.strip() else {}
	if not isinstance(data, dict):
		raise ValueError("options must be a JSON object")
	return MergeOptions.from_mapping(data)


@router.post("", summary="Merge an ordered list of images into a single PNG")
async def merge(
	files: List[UploadFile] = File(...),
	options: str = Form("{}"),
):
	try:
		merge_options = _parse_options(options)
	except ValueError as e:
		return create_error_response("INVALID_OPTIONS", f"Invalid options: {e}")

	groups = categorize_files(files)
	if groups["heic"]:
		first = groups["heic"][0]
		return create_error_response(
			"UNSUPPORTED_FORMAT",
			HEIC_MESSAGE,
			{"fileIndex": files.index(first), "fileName": first.filename},
		)
	if groups["unsupported"]:
		logger.info(f"Dropping {len(groups['unsupported'])} non-image upload(s)")

	supported = groups["supported"]
	buffers = [await f.read() for f in supported]
	names = [f.filename for f in supported]

	# the engine is synchronous; keep it off the event loop
	result = await run_in_threadpool(get_engine().merge, buffers, merge_options, names)
	return Response(
		content=result.data,
		media_type=result.mime,
		headers={"X-Image-Width": str(result.width), "X-Image-Height": str(result.height)},
	)
