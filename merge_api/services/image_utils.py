from __future__ import annotations

from typing import Any, Optional

import numpy as np
import piexif
from PIL import Image

from merge_api.services.formats import EXIF_FORMATS
from merge_api.services.types import DecodedRaster, NormalizedRaster

IDENTITY = 1
SWAPPING_ORIENTATIONS = {5, 6, 7, 8}


def _to_int_safe(v: Any) -> Optional[int]:
	if v is None:
		return None
	if isinstance(v, int):
		return v
	if isinstance(v, (list, tuple)) and v:
		try:
			return int(v[0])
		except (TypeError, ValueError):
			return None
	try:
		return int(v)
	except (TypeError, ValueError):
		return None


def read_exif_orientation(data: bytes, fmt: str) -> int:
	"""
	Best-effort EXIF orientation (1-8) from raw bytes; 1 when absent or unreadable.
	"""
	if fmt not in EXIF_FORMATS:
		return IDENTITY
	try:
		ex = piexif.load(data)
	except Exception:
		# malformed or missing EXIF never fails a decode
		return IDENTITY
	o = _to_int_safe(ex.get("0th", {}).get(piexif.ImageIFD.Orientation))
	if o is None or not 1 <= o <= 8:
		return IDENTITY
	return o


def apply_exif_orientation(img: Image.Image, orientation: int) -> Image.Image:
	o = orientation
	if o == 2:
		return img.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
	if o == 3:
		return img.transpose(Image.Transpose.ROTATE_180)
	if o == 4:
		return img.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
	if o == 5:
		return img.transpose(Image.Transpose.TRANSPOSE)
	if o == 6:
		return img.transpose(Image.Transpose.ROTATE_270)
	if o == 7:
		return img.transpose(Image.Transpose.TRANSVERSE)
	if o == 8:
		return img.transpose(Image.Transpose.ROTATE_90)
	return img


def normalize(raster: DecodedRaster) -> NormalizedRaster:
	"""
	Apply the raster's EXIF orientation to its pixels. Never fails: unknown tags
	are treated as identity.
	"""
	if raster.orientation not in range(2, 9):
		return NormalizedRaster(pixels=raster.pixels)
	img = apply_exif_orientation(Image.fromarray(raster.pixels), raster.orientation)
	return NormalizedRaster(pixels=np.array(img, dtype=np.uint8))
