from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np

PNG_MIME = "image/png"
DEFAULT_OVERLAP_SENSITIVITY = 35


class Axis(str, Enum):
	VERTICAL = "vertical"
	HORIZONTAL = "horizontal"


class Direction(str, Enum):
	"""
	Merge direction. Smart stacks vertically and removes overlapping bands.
	"""

	VERTICAL = "vertical"
	HORIZONTAL = "horizontal"
	SMART = "smart"

	@property
	def axis(self) -> Axis:
		if self is Direction.HORIZONTAL:
			return Axis.HORIZONTAL
		return Axis.VERTICAL


def _clamp_channel(value: Any, default: int = 255) -> int:
	try:
		v = float(value)
	except (TypeError, ValueError):
		return default
	if not math.isfinite(v):
		return default
	return int(min(255.0, max(0.0, v)))


@dataclass(frozen=True)
class BackgroundColor:
	r: int = 255
	g: int = 255
	b: int = 255
	a: int = 255

	@classmethod
	def white(cls) -> "BackgroundColor":
		return cls()

	@classmethod
	def black(cls) -> "BackgroundColor":
		return cls(0, 0, 0, 255)

	@classmethod
	def transparent(cls) -> "BackgroundColor":
		return cls(0, 0, 0, 0)

	@classmethod
	def from_mapping(cls, data: Mapping[str, Any]) -> "BackgroundColor":
		return cls(
			r=_clamp_channel(data.get("r")),
			g=_clamp_channel(data.get("g")),
			b=_clamp_channel(data.get("b")),
			a=_clamp_channel(data.get("a")),
		)

	@classmethod
	def parse(cls, text: str) -> "BackgroundColor":
		"""
		Parse "#RRGGBB", "#RRGGBBAA" or "r,g,b[,a]".
		"""
		s = text.strip()
		if s.startswith("#"):
			hexpart = s[1:]
			if len(hexpart) not in (6, 8):
				raise ValueError(f"Invalid hex color: {text!r}")
			values = [int(hexpart[i:i + 2], 16) for i in range(0, len(hexpart), 2)]
		else:
			values = [int(part) for part in s.split(",")]
			if len(values) not in (3, 4):
				raise ValueError(f"Expected 3 or 4 channels, got {len(values)}: {text!r}")
		if len(values) == 3:
			values.append(255)
		return cls(*(_clamp_channel(v) for v in values))

	def rgb(self) -> tuple:
		return (self.r, self.g, self.b)

	def to_dict(self) -> Dict[str, int]:
		return {"r": self.r, "g": self.g, "b": self.b, "a": self.a}


def _parse_sensitivity(value: Any) -> Optional[int]:
	if value is None or isinstance(value, bool):
		return None
	try:
		v = float(value)
	except (TypeError, ValueError):
		return None
	if not math.isfinite(v):
		return None
	# round half away from zero, then clamp
	rounded = int(math.floor(abs(v) + 0.5)) * (1 if v >= 0 else -1)
	return max(0, min(100, rounded))


def _parse_bool(value: Any, default: bool) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, str):
		text = value.strip().lower()
		if text == "true":
			return True
		if text == "false":
			return False
	return default


def _parse_positive_int(value: Any) -> Optional[int]:
	if value is None or isinstance(value, bool):
		return None
	try:
		v = int(value)
	except (TypeError, ValueError):
		return None
	return v if v > 0 else None


@dataclass(frozen=True)
class MergeOptions:
	direction: Direction = Direction.VERTICAL
	background: BackgroundColor = field(default_factory=BackgroundColor)
	overlap_sensitivity: int = DEFAULT_OVERLAP_SENSITIVITY
	strip_chrome: bool = True  # smart only
	max_out_pixels: Optional[int] = None

	@classmethod
	def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "MergeOptions":
		"""
		Lenient parse of the wire form. Unknown directions fall back to vertical,
		channels and sensitivity are clamped, junk values keep the defaults.
		"""
		if not data:
			return cls()

		direction_raw = data.get("direction")
		try:
			direction = Direction(str(direction_raw).lower()) if direction_raw is not None else Direction.VERTICAL
		except ValueError:
			direction = Direction.VERTICAL

		bg_raw = data.get("background")
		background = BackgroundColor.from_mapping(bg_raw) if isinstance(bg_raw, Mapping) else BackgroundColor()

		sens_raw = data.get("overlapSensitivity", data.get("overlap_sensitivity"))
		sensitivity = _parse_sensitivity(sens_raw)
		if sensitivity is None:
			sensitivity = DEFAULT_OVERLAP_SENSITIVITY

		strip_chrome = _parse_bool(data.get("stripChrome", data.get("strip_chrome")), default=True)
		max_out_pixels = _parse_positive_int(data.get("maxOutPixels", data.get("max_out_pixels")))

		return cls(
			direction=direction,
			background=background,
			overlap_sensitivity=sensitivity,
			strip_chrome=strip_chrome,
			max_out_pixels=max_out_pixels,
		)

	def to_dict(self) -> Dict[str, Any]:
		out: Dict[str, Any] = {
			"direction": self.direction.value,
			"background": self.background.to_dict(),
			"overlapSensitivity": self.overlap_sensitivity,
			"stripChrome": self.strip_chrome,
		}
		if self.max_out_pixels is not None:
			out["maxOutPixels"] = self.max_out_pixels
		return out


@dataclass
class DecodedRaster:
	pixels: np.ndarray  # [H,W,4] uint8 RGBA, straight alpha
	orientation: int = 1
	format: str = ""

	@property
	def width(self) -> int:
		return int(self.pixels.shape[1])

	@property
	def height(self) -> int:
		return int(self.pixels.shape[0])


@dataclass
class NormalizedRaster:
	pixels: np.ndarray  # [H,W,4] uint8 RGBA, orientation applied

	@property
	def width(self) -> int:
		return int(self.pixels.shape[1])

	@property
	def height(self) -> int:
		return int(self.pixels.shape[0])

	@property
	def size(self) -> tuple:
		return (self.width, self.height)

	def extent(self, axis: Axis) -> int:
		return self.height if axis is Axis.VERTICAL else self.width

	def cross_extent(self, axis: Axis) -> int:
		return self.width if axis is Axis.VERTICAL else self.height

	def crop(self, axis: Axis, leading: int = 0, trailing: int = 0) -> "NormalizedRaster":
		if leading == 0 and trailing == 0:
			return self
		end = self.extent(axis) - trailing
		if axis is Axis.VERTICAL:
			cropped = self.pixels[leading:end]
		else:
			cropped = self.pixels[:, leading:end]
		return NormalizedRaster(pixels=np.ascontiguousarray(cropped))


@dataclass(frozen=True)
class OverlapResult:
	trim_leading: int = 0
	trim_trailing: int = 0
	score: Optional[int] = None  # mean abs channel diff, thousandths of a level
	confidence: int = 0  # per-mille

	@property
	def trim(self) -> int:
		return self.trim_leading + self.trim_trailing


@dataclass(frozen=True)
class MergeResult:
	data: bytes
	width: int
	height: int
	mime: str = PNG_MIME

	def to_message(self) -> Dict[str, Any]:
		return {"bytes": self.data, "width": self.width, "height": self.height, "mime": self.mime}
