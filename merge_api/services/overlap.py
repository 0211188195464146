"""
Overlap detection between adjacent rasters for smart merges.

For a pair (prev, next) the trailing k rows (or columns) of prev are compared
with the leading k rows (or columns) of next. The score for a candidate k is the
mean absolute RGB channel difference over the compared strips, in integer
thousandths of a channel level, ignoring pixels that are fully transparent in
both strips. The largest k that is accepted wins; next is then cropped by k at
its leading edge.

A candidate is accepted when its score is within the sensitivity threshold
    threshold = BASE_THRESHOLD + THRESHOLD_PER_STEP * sensitivity
(sensitivity 0: below half a level, i.e. an exact 8-bit match; sensitivity 100:
a mean difference of 60.5 levels) and the strip of next carries structure the
match can be judged on:
- a strip with enough variance must score clearly below its own row-to-row
  variation, so unrelated content with similar tones is not taken for overlap;
- a flat strip (variance under the floor) is only accepted on an exact match.

Candidates of TEMPLATE_ROWS rows and more are located with cv2.matchTemplate on
a grayscale copy of the leading template of next; smaller ones are scanned
directly. Every candidate is then verified with the integer score above.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np

from merge_api.services.types import Axis, NormalizedRaster, OverlapResult

logger = logging.getLogger(__name__)

MIN_OVERLAP_PX = 5
MAX_WINDOW_NUM = 3
MAX_WINDOW_DEN = 4
MAX_SAMPLED_SPAN = 256

BASE_THRESHOLD = 500
THRESHOLD_PER_STEP = 600

# structure gate, interpolated from conservative (sensitivity 0) to aggressive (100)
MIN_VARIANCE_CONSERVATIVE = 50
MIN_VARIANCE_AGGRESSIVE = 10
DISTINCT_PERMILLE_CONSERVATIVE = 250
DISTINCT_PERMILLE_AGGRESSIVE = 750

# matchTemplate candidate search
TEMPLATE_ROWS = 80
NCC_PERMILLE_CONSERVATIVE = 860
NCC_PERMILLE_AGGRESSIVE = 760
MAX_VERIFIED_CANDIDATES = 32

_NO_OVERLAP = OverlapResult()


def _clamp_sensitivity(sensitivity: int) -> int:
	return max(0, min(100, int(sensitivity)))


def _lerp(conservative: int, aggressive: int, sensitivity: int) -> int:
	s = _clamp_sensitivity(sensitivity)
	return conservative + ((aggressive - conservative) * s) // 100


def sensitivity_threshold(sensitivity: int) -> int:
	return BASE_THRESHOLD + THRESHOLD_PER_STEP * _clamp_sensitivity(sensitivity)


def min_strip_variance(sensitivity: int) -> int:
	"""Variance floor (in squared levels) below which a strip counts as flat."""
	return _lerp(MIN_VARIANCE_CONSERVATIVE, MIN_VARIANCE_AGGRESSIVE, sensitivity)


def distinct_permille(sensitivity: int) -> int:
	"""Largest accepted score as a per-mille share of the strip's row-to-row variation."""
	return _lerp(DISTINCT_PERMILLE_CONSERVATIVE, DISTINCT_PERMILLE_AGGRESSIVE, sensitivity)


def max_search_window(prev_extent: int, next_extent: int) -> int:
	"""
	Largest k examined; always strictly below the smaller extent.
	"""
	return (min(prev_extent, next_extent) * MAX_WINDOW_NUM) // MAX_WINDOW_DEN


def _rows_along(pixels: np.ndarray, axis: Axis) -> np.ndarray:
	# rows of the returned view run along the merge axis
	return pixels if axis is Axis.VERTICAL else pixels.swapaxes(0, 1)


def _sample_step(span: int) -> int:
	return max(1, -(-span // MAX_SAMPLED_SPAN))


def strip_difference(prev_strip: np.ndarray, next_strip: np.ndarray) -> Optional[int]:
	"""
	Mean absolute RGB difference of two equally shaped RGBA strips, in thousandths
	of a level. Pixels transparent in both strips are excluded; None when nothing
	is left to compare.
	"""
	include = (prev_strip[..., 3] != 0) | (next_strip[..., 3] != 0)
	count = int(np.count_nonzero(include))
	if count == 0:
		return None
	diff = cv2.absdiff(
		np.ascontiguousarray(prev_strip[..., :3]),
		np.ascontiguousarray(next_strip[..., :3]),
	)
	total = int(diff.sum(axis=2, dtype=np.int64)[include].sum())
	return (total * 1000) // (count * 3)


def strip_variance(strip: np.ndarray) -> Optional[int]:
	"""
	Variance of the RGB values of the strip's visible pixels, in squared levels
	(rounded down). None when every pixel is transparent.
	"""
	values = strip[..., :3][strip[..., 3] != 0].astype(np.int64)
	n = int(values.size)
	if n == 0:
		return None
	total = int(values.sum())
	squares = int((values * values).sum())
	return (n * squares - total * total) // (n * n)


def row_variation(strip: np.ndarray) -> int:
	"""
	Mean absolute RGB difference between vertically adjacent visible pixels of
	the strip, in thousandths of a level. 0 when there is nothing to compare.
	"""
	if strip.shape[0] < 2:
		return 0
	upper = strip[:-1]
	lower = strip[1:]
	both = (upper[..., 3] != 0) & (lower[..., 3] != 0)
	count = int(np.count_nonzero(both))
	if count == 0:
		return 0
	diff = cv2.absdiff(np.ascontiguousarray(upper[..., :3]), np.ascontiguousarray(lower[..., :3]))
	total = int(diff.sum(axis=2, dtype=np.int64)[both].sum())
	return (total * 1000) // (count * 3)


def _accepts(score: Optional[int], next_strip: np.ndarray, sensitivity: int) -> bool:
	if score is None or score > sensitivity_threshold(sensitivity):
		return False
	variance = strip_variance(next_strip)
	if variance is None or variance < min_strip_variance(sensitivity):
		# flat strips say nothing about alignment unless they match exactly
		return score <= BASE_THRESHOLD
	return score * 1000 <= row_variation(next_strip) * distinct_permille(sensitivity)


def _confidence(score: int) -> int:
	return max(0, 1000 - score // 255)


def _gray(strip: np.ndarray) -> np.ndarray:
	gray = cv2.cvtColor(np.ascontiguousarray(strip), cv2.COLOR_RGBA2GRAY)
	gray[strip[..., 3] == 0] = 0
	return gray.astype(np.float32)


def _template_candidates(tail: np.ndarray, head: np.ndarray, window: int, sensitivity: int) -> List[int]:
	"""
	Candidate k values >= TEMPLATE_ROWS, largest first, found by matching the
	leading TEMPLATE_ROWS of next inside the trailing window of prev.
	"""
	search = _gray(tail)
	template = _gray(head[:TEMPLATE_ROWS])
	variance = strip_variance(head[:TEMPLATE_ROWS])
	if variance is None or variance < min_strip_variance(sensitivity):
		# NCC is undefined on a flat template: look for exact placements only
		sqdiff = cv2.matchTemplate(search, template, cv2.TM_SQDIFF)[:, 0]
		level = BASE_THRESHOLD / 1000.0
		hits = np.flatnonzero(sqdiff <= level * level * template.size)
	else:
		ncc = cv2.matchTemplate(search, template, cv2.TM_CCOEFF_NORMED)[:, 0]
		min_ncc = _lerp(NCC_PERMILLE_CONSERVATIVE, NCC_PERMILLE_AGGRESSIVE, sensitivity) / 1000.0
		hits = np.flatnonzero(ncc >= min_ncc)
	# search row y puts next's first row on prev's row (extent - window + y)
	return sorted((window - int(y) for y in hits), reverse=True)


def detect_overlap(
	prev: NormalizedRaster,
	next_raster: NormalizedRaster,
	axis: Axis,
	sensitivity: int,
) -> OverlapResult:
	if prev.cross_extent(axis) != next_raster.cross_extent(axis):
		logger.debug(
			f"Overlap skipped: cross extents differ ({prev.cross_extent(axis)} vs {next_raster.cross_extent(axis)})"
		)
		return _NO_OVERLAP

	window = max_search_window(prev.extent(axis), next_raster.extent(axis))
	if window < MIN_OVERLAP_PX:
		return _NO_OVERLAP

	a = _rows_along(prev.pixels, axis)
	b = _rows_along(next_raster.pixels, axis)
	step = _sample_step(a.shape[1])
	tail = np.ascontiguousarray(a[-window:, ::step])
	head = np.ascontiguousarray(b[:window, ::step])

	def verify(k: int) -> Optional[OverlapResult]:
		score = strip_difference(tail[window - k:], head[:k])
		if not _accepts(score, head[:k], sensitivity):
			return None
		return OverlapResult(trim_leading=k, score=score, confidence=_confidence(score))

	# largest k first: the first accepted candidate is the answer
	direct_from = window
	if window > TEMPLATE_ROWS:
		candidates = _template_candidates(tail, head, window, sensitivity)
		for k in candidates[:MAX_VERIFIED_CANDIDATES]:
			res = verify(k)
			if res is not None:
				return res
		direct_from = TEMPLATE_ROWS - 1

	for k in range(direct_from, MIN_OVERLAP_PX - 1, -1):
		res = verify(k)
		if res is not None:
			return res
	return _NO_OVERLAP


def compute_overlaps(
	rasters: Sequence[NormalizedRaster],
	axis: Axis,
	sensitivity: int,
) -> List[OverlapResult]:
	"""
	overlaps[i] is the result for the pair (rasters[i], rasters[i + 1]).
	"""
	results: List[OverlapResult] = []
	for i in range(len(rasters) - 1):
		res = detect_overlap(rasters[i], rasters[i + 1], axis, sensitivity)
		logger.debug(f"Overlap {i}->{i + 1}: trim={res.trim_leading} score={res.score} confidence={res.confidence}")
		results.append(res)
	return results
