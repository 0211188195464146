from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Safety ceiling for the composited canvas (pixels).
DEFAULT_MAX_OUT_PIXELS = 100_000_000


@dataclass(frozen=True)
class EngineSettings:
	"""
	Engine-wide settings. The engine never reads the environment itself;
	host entry points call `from_env` and pass the result in.
	"""

	max_out_pixels: Optional[int] = DEFAULT_MAX_OUT_PIXELS
	log_level: str = "INFO"

	@classmethod
	def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
		env = os.environ if environ is None else environ
		raw_limit = env.get("MERGE_MAX_OUT_PIXELS")
		max_out_pixels: Optional[int] = DEFAULT_MAX_OUT_PIXELS
		if raw_limit is not None and raw_limit.strip() != "":
			limit = int(raw_limit)
			max_out_pixels = limit if limit > 0 else None
		return cls(
			max_out_pixels=max_out_pixels,
			log_level=env.get("MERGE_LOG_LEVEL", "INFO").upper(),
		)
