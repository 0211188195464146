from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
from PIL import Image

from merge_api.services.types import Axis, NormalizedRaster

# One kernel for every resize, up or down.
RESAMPLE_FILTER = Image.Resampling.LANCZOS


def round_half_away(num: int, den: int) -> int:
	"""
	round(num / den) with halves rounded away from zero, for num >= 0, den > 0.
	"""
	return (2 * num + den) // (2 * den)


def compute_target_dimension(sizes: Sequence[Tuple[int, int]], axis: Axis) -> int:
	"""
	Shared cross-axis size: max width for vertical stacks, max height for horizontal ones.
	"""
	if not sizes:
		return 0
	if axis is Axis.VERTICAL:
		return max(w for (w, h) in sizes)
	return max(h for (w, h) in sizes)


def compute_scaled_dimensions(width: int, height: int, target: int, axis: Axis) -> Tuple[int, int]:
	if width <= 0 or height <= 0 or target <= 0:
		return (0, 0)
	if axis is Axis.VERTICAL:
		return (target, max(1, round_half_away(height * target, width)))
	return (max(1, round_half_away(width * target, height)), target)


def compute_output_size(scaled: Sequence[Tuple[int, int]], axis: Axis) -> Tuple[int, int]:
	if not scaled:
		return (0, 0)
	if axis is Axis.VERTICAL:
		return (max(w for (w, h) in scaled), sum(h for (w, h) in scaled))
	return (sum(w for (w, h) in scaled), max(h for (w, h) in scaled))


def plan_scaled_sizes(rasters: Sequence[NormalizedRaster], axis: Axis) -> List[Tuple[int, int]]:
	target = compute_target_dimension([r.size for r in rasters], axis)
	return [compute_scaled_dimensions(r.width, r.height, target, axis) for r in rasters]


def resize(raster: NormalizedRaster, width: int, height: int) -> NormalizedRaster:
	if width <= 0 or height <= 0:
		raise ValueError(f"Scale dimensions must be non-zero, got {width}x{height}")
	if raster.size == (width, height):
		return raster
	img = Image.fromarray(raster.pixels).resize((width, height), RESAMPLE_FILTER)
	return NormalizedRaster(pixels=np.array(img, dtype=np.uint8))


def resize_to_target(raster: NormalizedRaster, target: int, axis: Axis) -> NormalizedRaster:
	w, h = compute_scaled_dimensions(raster.width, raster.height, target, axis)
	return resize(raster, w, h)
