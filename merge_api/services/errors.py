"""
Structured merge failures.

Every failure carries a wire code and enough context (file index and name, when
known) for a caller to point at the offending input.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MergeFailure(Exception):
	"""Base exception for every merge failure"""

	code = "INTERNAL_ERROR"

	def __init__(
		self,
		message: str,
		*,
		file_index: Optional[int] = None,
		file_name: Optional[str] = None,
		details: Optional[Dict[str, Any]] = None,
	):
		self.message = message
		self.details: Dict[str, Any] = dict(details or {})
		if file_index is not None:
			self.details["fileIndex"] = file_index
		if file_name is not None:
			self.details["fileName"] = file_name
		super().__init__(self.message)

	@property
	def file_index(self) -> Optional[int]:
		return self.details.get("fileIndex")

	@property
	def file_name(self) -> Optional[str]:
		return self.details.get("fileName")

	def to_dict(self) -> Dict[str, Any]:
		out: Dict[str, Any] = {"code": self.code, "message": self.message}
		if self.details:
			out["details"] = dict(self.details)
		return out


def _with_file(message: str, file_name: Optional[str]) -> str:
	return f"{message} (file: {file_name})" if file_name else message


class UnsupportedFormatError(MergeFailure):
	"""Raised when bytes are not one of the supported image formats"""

	code = "UNSUPPORTED_FORMAT"

	def __init__(self, index: int, file_name: Optional[str] = None, reason: str = "unrecognized image format"):
		super().__init__(
			_with_file(f"Unsupported image format at index {index}: {reason}", file_name),
			file_index=index,
			file_name=file_name,
		)


class DecodeFailedError(MergeFailure):
	"""Raised when a recognized image is truncated or corrupt"""

	code = "DECODE_FAILED"

	def __init__(self, index: int, reason: str, file_name: Optional[str] = None):
		super().__init__(
			_with_file(f"Failed to decode image at index {index}: {reason}", file_name),
			file_index=index,
			file_name=file_name,
		)


class NoImagesError(MergeFailure):
	"""Raised when fewer than two images are supplied"""

	code = "NO_IMAGES"

	def __init__(self, count: int = 0):
		message = "No images provided" if count == 0 else f"At least 2 images are required, got {count}"
		super().__init__(message, details={"count": count})


class OutputTooLargeError(MergeFailure):
	"""Raised before canvas allocation when the output exceeds the pixel ceiling"""

	code = "OUTPUT_TOO_LARGE"

	def __init__(self, width: int, height: int, max_out_pixels: int):
		out_pixels = width * height
		super().__init__(
			f"Output {width}x{height} ({out_pixels} pixels) exceeds the limit of {max_out_pixels} pixels",
			details={
				"width": width,
				"height": height,
				"outPixels": out_pixels,
				"maxOutPixels": max_out_pixels,
			},
		)


class InternalError(MergeFailure):
	"""Raised for any unexpected failure inside the pipeline"""

	code = "INTERNAL_ERROR"

	def __init__(self, message: str, stage: Optional[str] = None):
		super().__init__(message, details={"stage": stage} if stage else None)
