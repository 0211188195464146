"""
Chrome strip pre-pass for smart merges.

Screenshots of the same app repeat their header and footer bars on every
capture. Those bars match each other perfectly and would otherwise dominate
overlap detection, so near-identical leading/trailing bands between adjacent
rasters are detected on a small grayscale proxy and trimmed first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from merge_api.services.scaling import round_half_away
from merge_api.services.types import Axis, NormalizedRaster

PROXY_SPAN = 320
MARGIN_PERMILLE = 25

PIXEL_DELTA = 12
ROW_MATCH_PERMILLE = 970
ROW_MEAN_DELTA_MAX = 6

MAX_TRIM_PX = 240
MAX_TRIM_PERMILLE = 200
MIN_CONTENT_PX = 50


@dataclass(frozen=True)
class ChromeTrim:
	leading: int = 0
	trailing: int = 0


def build_proxy(raster: NormalizedRaster, axis: Axis) -> np.ndarray:
	"""
	Gray proxy with rows along the merge axis, at most PROXY_SPAN wide.
	"""
	gray = cv2.cvtColor(np.ascontiguousarray(raster.pixels), cv2.COLOR_RGBA2GRAY)
	if axis is Axis.HORIZONTAL:
		gray = np.ascontiguousarray(gray.T)
	h, w = gray.shape[:2]
	target_w = max(1, min(PROXY_SPAN, w))
	target_h = min(max(1, round_half_away(h * target_w, w)), h)
	if (target_w, target_h) == (w, h):
		return gray
	return cv2.resize(gray, (target_w, target_h), interpolation=cv2.INTER_AREA)


def _common_span(wa: int, wb: int) -> Tuple[int, int]:
	common_w = min(wa, wb)
	if common_w == 0:
		return (0, 0)
	margin = (common_w * MARGIN_PERMILLE) // 1000
	return (margin, max(0, common_w - 2 * margin))


def _rows_similar(a_row: np.ndarray, b_row: np.ndarray) -> bool:
	diff = np.abs(a_row.astype(np.int16) - b_row.astype(np.int16))
	w = diff.shape[0]
	if w == 0:
		return False
	matches = int(np.count_nonzero(diff <= PIXEL_DELTA))
	if matches * 1000 < ROW_MATCH_PERMILLE * w:
		return False
	return int(diff.sum()) <= ROW_MEAN_DELTA_MAX * w


def count_common_rows(a: np.ndarray, b: np.ndarray, from_end: bool) -> int:
	max_rows = min(a.shape[0], b.shape[0])
	x0, w = _common_span(a.shape[1], b.shape[1])
	if max_rows == 0 or w == 0:
		return 0
	rows = 0
	for i in range(max_rows):
		ay = a.shape[0] - 1 - i if from_end else i
		by = b.shape[0] - 1 - i if from_end else i
		if not _rows_similar(a[ay, x0:x0 + w], b[by, x0:x0 + w]):
			break
		rows += 1
	return rows


def _proxy_rows_to_pixels(rows: int, extent: int, proxy_extent: int) -> int:
	if rows == 0 or extent == 0 or proxy_extent == 0:
		return 0
	return round_half_away(rows * extent, proxy_extent)


def _clamp_trim(trim: int, extent: int) -> int:
	if extent == 0:
		return 0
	max_by_fraction = round_half_away(extent * MAX_TRIM_PERMILLE, 1000)
	return min(trim, MAX_TRIM_PX, max_by_fraction, extent)


def _enforce_min_content(trim: ChromeTrim, extent: int) -> ChromeTrim:
	min_content = min(MIN_CONTENT_PX, extent)
	if trim.leading + trim.trailing > extent - min_content:
		return ChromeTrim()
	return trim


def compute_chrome_trims(rasters: Sequence[NormalizedRaster], axis: Axis) -> List[ChromeTrim]:
	"""
	One trim per raster. The first raster keeps its leading edge and the last
	keeps its trailing edge.
	"""
	n = len(rasters)
	if n == 0:
		return []
	proxies = [build_proxy(r, axis) for r in rasters]
	leading = [0] * n
	trailing = [0] * n

	for i in range(n - 1):
		prev, curr = proxies[i], proxies[i + 1]
		top_rows = count_common_rows(prev, curr, from_end=False)
		bottom_rows = count_common_rows(prev, curr, from_end=True)
		curr_extent = rasters[i + 1].extent(axis)
		prev_extent = rasters[i].extent(axis)
		leading[i + 1] = _clamp_trim(_proxy_rows_to_pixels(top_rows, curr_extent, curr.shape[0]), curr_extent)
		trailing[i] = _clamp_trim(_proxy_rows_to_pixels(bottom_rows, prev_extent, prev.shape[0]), prev_extent)

	leading[0] = 0
	trailing[-1] = 0
	return [
		_enforce_min_content(ChromeTrim(leading=leading[i], trailing=trailing[i]), rasters[i].extent(axis))
		for i in range(n)
	]


def apply_chrome_trims(
	rasters: Sequence[NormalizedRaster],
	trims: Sequence[ChromeTrim],
	axis: Axis,
) -> List[NormalizedRaster]:
	return [r.crop(axis, leading=t.leading, trailing=t.trailing) for r, t in zip(rasters, trims)]
