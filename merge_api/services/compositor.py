from __future__ import annotations

from typing import Sequence

import numpy as np

from merge_api.services.types import Axis, BackgroundColor, NormalizedRaster


def blend_with_background(pixels: np.ndarray, background: BackgroundColor) -> np.ndarray:
	"""
	Flatten straight-alpha RGBA pixels onto the background color.
	out = (src * a + bg * (255 - a) + 127) // 255 per channel; result alpha is 255.
	"""
	alpha = pixels[..., 3:4].astype(np.uint32)
	src = pixels[..., :3].astype(np.uint32)
	bg = np.array(background.rgb(), dtype=np.uint32)
	out = np.empty(pixels.shape[:2] + (4,), dtype=np.uint8)
	out[..., :3] = ((src * alpha + bg * (255 - alpha) + 127) // 255).astype(np.uint8)
	out[..., 3] = 255
	return out


def allocate_canvas(width: int, height: int, background: BackgroundColor) -> np.ndarray:
	canvas = np.empty((height, width, 4), dtype=np.uint8)
	canvas[..., :3] = background.rgb()
	canvas[..., 3] = 255
	return canvas


def composite(
	rasters: Sequence[NormalizedRaster],
	axis: Axis,
	background: BackgroundColor,
) -> np.ndarray:
	"""
	Place rasters in order at cumulative offsets along the axis on an opaque canvas.
	"""
	if not rasters:
		raise ValueError("Nothing to composite")
	total = sum(r.extent(axis) for r in rasters)
	cross = max(r.cross_extent(axis) for r in rasters)
	if axis is Axis.VERTICAL:
		canvas = allocate_canvas(cross, total, background)
	else:
		canvas = allocate_canvas(total, cross, background)

	offset = 0
	for r in rasters:
		extent = r.extent(axis)
		# centered across the axis when narrower than the canvas
		c0 = (cross - r.cross_extent(axis)) // 2
		c1 = c0 + r.cross_extent(axis)
		flat = blend_with_background(r.pixels, background)
		if axis is Axis.VERTICAL:
			canvas[offset:offset + extent, c0:c1] = flat
		else:
			canvas[c0:c1, offset:offset + extent] = flat
		offset += extent
	return canvas
