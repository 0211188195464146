from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional, Sequence

from merge_api.config import EngineSettings
from merge_api.services import decoder
from merge_api.services.chrome_strip import apply_chrome_trims, compute_chrome_trims
from merge_api.services.compositor import composite
from merge_api.services.encoder import OUTPUT_MIME, encode_png
from merge_api.services.errors import InternalError, MergeFailure, NoImagesError, OutputTooLargeError
from merge_api.services.image_utils import normalize
from merge_api.services.overlap import compute_overlaps
from merge_api.services.scaling import compute_output_size, plan_scaled_sizes, resize
from merge_api.services.types import Direction, MergeOptions, MergeResult, NormalizedRaster

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


class EngineState(str, Enum):
	IDLE = "idle"
	DECODING = "decoding"
	NORMALIZING = "normalizing"
	DETECTING_OVERLAP = "detecting_overlap"
	SCALING = "scaling"
	COMPOSITING = "compositing"
	ENCODING = "encoding"
	DONE = "done"
	FAILED = "failed"


_STAGE_PERCENT = {
	EngineState.DECODING: 0,
	EngineState.NORMALIZING: 30,
	EngineState.DETECTING_OVERLAP: 40,
	EngineState.SCALING: 55,
	EngineState.COMPOSITING: 75,
	EngineState.ENCODING: 85,
	EngineState.DONE: 100,
}


class _Run:
	"""State of a single merge call. Never shared between calls."""

	def __init__(self, on_progress: Optional[ProgressCallback]):
		self.state = EngineState.IDLE
		self.on_progress = on_progress

	def enter(self, state: EngineState) -> None:
		logger.debug(f"Merge stage: {self.state.value} -> {state.value}")
		self.state = state
		if self.on_progress is not None:
			self.on_progress(state.value, _STAGE_PERCENT.get(state, 0))


class MergeEngine:
	"""
	Synchronous image-merge pipeline:
	decode -> normalize -> [overlap removal] -> scale -> composite -> encode.

	Holds only immutable settings, so one instance may serve concurrent callers.
	Any failure aborts the whole call; no partial output is ever returned.
	"""

	def __init__(self, settings: Optional[EngineSettings] = None):
		self.settings = settings or EngineSettings()

	def _max_out_pixels(self, options: MergeOptions) -> Optional[int]:
		if options.max_out_pixels is not None:
			return options.max_out_pixels
		return self.settings.max_out_pixels

	def merge(
		self,
		images: Sequence[bytes],
		options: Optional[MergeOptions] = None,
		file_names: Optional[Sequence[Optional[str]]] = None,
		on_progress: Optional[ProgressCallback] = None,
	) -> MergeResult:
		options = options or MergeOptions()
		run = _Run(on_progress)
		try:
			result = self._run(run, images, options, file_names)
		except MergeFailure as e:
			run.state = EngineState.FAILED
			logger.warning(f"Merge failed [{e.code}]: {e.message}")
			raise
		except Exception as e:
			failed_in = run.state.value
			run.state = EngineState.FAILED
			logger.error(f"Merge failed unexpectedly during {failed_in}: {e}", exc_info=True)
			raise InternalError(f"Unexpected failure during {failed_in}: {e.__class__.__name__}: {e}", stage=failed_in) from e
		logger.info(
			f"Merged {len(images)} images ({options.direction.value}) into {result.width}x{result.height}, {len(result.data)} bytes"
		)
		return result

	def _run(
		self,
		run: _Run,
		images: Sequence[bytes],
		options: MergeOptions,
		file_names: Optional[Sequence[Optional[str]]],
	) -> MergeResult:
		if len(images) < 2:
			raise NoImagesError(len(images))

		names: List[Optional[str]] = list(file_names or [])
		names += [None] * (len(images) - len(names))
		axis = options.direction.axis

		# 1) Decode
		run.enter(EngineState.DECODING)
		decoded = [decoder.decode(data, index=i, file_name=names[i]) for i, data in enumerate(images)]

		# 2) Orientation
		run.enter(EngineState.NORMALIZING)
		rasters: List[NormalizedRaster] = [normalize(d) for d in decoded]
		del decoded

		# 3) Smart mode: strip repeated chrome, then crop overlaps off each later image
		if options.direction is Direction.SMART:
			run.enter(EngineState.DETECTING_OVERLAP)
			if options.strip_chrome:
				trims = compute_chrome_trims(rasters, axis)
				rasters = apply_chrome_trims(rasters, trims, axis)
			overlaps = compute_overlaps(rasters, axis, options.overlap_sensitivity)
			rasters = [rasters[0]] + [
				r.crop(axis, leading=o.trim_leading) for r, o in zip(rasters[1:], overlaps)
			]

		# 4) Scale (size checked before any resampling or canvas allocation)
		run.enter(EngineState.SCALING)
		scaled_sizes = plan_scaled_sizes(rasters, axis)
		out_w, out_h = compute_output_size(scaled_sizes, axis)
		if out_w == 0 or out_h == 0:
			raise InternalError("Computed an empty output canvas", stage=run.state.value)
		limit = self._max_out_pixels(options)
		if limit is not None and out_w * out_h > limit:
			raise OutputTooLargeError(out_w, out_h, limit)
		rasters = [resize(r, w, h) for r, (w, h) in zip(rasters, scaled_sizes)]

		# 5) Composite
		run.enter(EngineState.COMPOSITING)
		canvas = composite(rasters, axis, options.background)
		del rasters

		# 6) Encode
		run.enter(EngineState.ENCODING)
		data = encode_png(canvas)
		height, width = canvas.shape[:2]

		run.enter(EngineState.DONE)
		return MergeResult(data=data, width=int(width), height=int(height), mime=OUTPUT_MIME)


_engine: Optional[MergeEngine] = None
_engine_lock = threading.Lock()


def get_engine(settings: Optional[EngineSettings] = None) -> MergeEngine:
	"""
	Process-wide engine, created once. `settings` only applies to the first call.
	"""
	global _engine
	if _engine is None:
		with _engine_lock:
			if _engine is None:
				_engine = MergeEngine(settings)
	return _engine


def merge(
	images: Sequence[bytes],
	options: Optional[MergeOptions] = None,
	file_names: Optional[Sequence[Optional[str]]] = None,
) -> MergeResult:
	return get_engine().merge(images, options, file_names)
