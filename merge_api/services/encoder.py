from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image

from merge_api.services.types import PNG_MIME

OUTPUT_MIME = PNG_MIME


def encode_png(canvas: np.ndarray) -> bytes:
	"""
	Losslessly encode an [H,W,4] uint8 canvas as PNG.
	"""
	buf = BytesIO()
	Image.fromarray(np.ascontiguousarray(canvas, dtype=np.uint8)).save(buf, format="PNG", optimize=True)
	return buf.getvalue()
