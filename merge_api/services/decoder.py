from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image

from merge_api.services.errors import DecodeFailedError, UnsupportedFormatError
from merge_api.services.formats import is_heic_bytes, sniff_format
from merge_api.services.image_utils import read_exif_orientation
from merge_api.services.types import DecodedRaster

logger = logging.getLogger(__name__)

_WIDE_GRAY_MODES = {"I", "I;16", "I;16L", "I;16B", "I;16N"}


def _to_rgba(img: Image.Image) -> np.ndarray:
	"""
	Convert the current frame to an [H,W,4] uint8 RGBA array.
	16-bit and float gray frames are reduced to 8 bits first.
	"""
	if img.mode in _WIDE_GRAY_MODES:
		wide = np.asarray(img).astype(np.int64)
		img = Image.fromarray(np.clip(wide >> 8, 0, 255).astype(np.uint8))
	elif img.mode == "F":
		flt = np.asarray(img, dtype=np.float32)
		img = Image.fromarray(np.clip(flt, 0.0, 255.0).astype(np.uint8))
	if img.mode != "RGBA":
		img = img.convert("RGBA")
	return np.array(img, dtype=np.uint8)


def decode(data: bytes, index: int = 0, file_name: Optional[str] = None) -> DecodedRaster:
	"""
	Decode the first frame of a PNG, JPEG, GIF, WebP or TIFF byte buffer.
	The format is sniffed from content; `index` and `file_name` only label errors.
	"""
	fmt = sniff_format(data)
	if fmt is None:
		reason = "HEIC/HEIF is not supported" if is_heic_bytes(data) else "unrecognized image format"
		raise UnsupportedFormatError(index, file_name, reason)

	try:
		with Image.open(BytesIO(data), formats=[fmt]) as img:
			img.load()
			pixels = _to_rgba(img)
	except Exception as e:
		raise DecodeFailedError(index, str(e) or e.__class__.__name__, file_name) from e

	if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
		raise DecodeFailedError(index, "image has no pixels", file_name)

	orientation = read_exif_orientation(data, fmt)
	logger.debug(f"Decoded image {index}: {fmt} {pixels.shape[1]}x{pixels.shape[0]} orientation={orientation}")
	return DecodedRaster(pixels=pixels, orientation=orientation, format=fmt)
