from __future__ import annotations

from pathlib import PurePath
from typing import Any, Dict, Iterable, List, Optional

# Pillow format names, in sniffing order
SUPPORTED_FORMATS = ("PNG", "JPEG", "GIF", "WEBP", "TIFF")

SUPPORTED_MIME_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp", "image/tiff"}
SUPPORTED_IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".tif", ".tiff"}

HEIC_MIME_TYPES = {"image/heic", "image/heif"}
HEIC_EXTS = {".heic", ".heif"}
HEIC_BRANDS = {b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis", b"hevm", b"hevs", b"mif1", b"msf1"}

HEIC_MESSAGE = "HEIC/HEIF images are not supported. Convert them to JPEG or PNG and try again."

# formats whose containers can carry an EXIF block readable by piexif
EXIF_FORMATS = {"JPEG", "TIFF", "WEBP"}


def sniff_format(data: bytes) -> Optional[str]:
	"""
	Identify the image container from its magic bytes, ignoring any file name.
	Returns a Pillow format name or None.
	"""
	if data[:8] == b"\x89PNG\r\n\x1a\n":
		return "PNG"
	if data[:3] == b"\xff\xd8\xff":
		return "JPEG"
	if data[:6] in (b"GIF87a", b"GIF89a"):
		return "GIF"
	if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
		return "WEBP"
	if data[:4] in (b"II*\x00", b"MM\x00*"):
		return "TIFF"
	return None


def is_heic_bytes(data: bytes) -> bool:
	return data[4:8] == b"ftyp" and data[8:12] in HEIC_BRANDS


def _ext(filename: Optional[str]) -> str:
	return PurePath(filename or "").suffix.lower()


def is_heic_file(filename: Optional[str], content_type: Optional[str]) -> bool:
	if (content_type or "").lower() in HEIC_MIME_TYPES:
		return True
	# some clients never report a HEIC mime type
	return _ext(filename) in HEIC_EXTS


def is_supported_image(filename: Optional[str], content_type: Optional[str]) -> bool:
	if (content_type or "").lower() in SUPPORTED_MIME_TYPES:
		return True
	return _ext(filename) in SUPPORTED_IMAGE_EXTS


def categorize_files(files: Iterable[Any]) -> Dict[str, List[Any]]:
	"""
	Split uploads (anything with `filename` and `content_type`) into
	supported, heic and unsupported lists, preserving order.
	"""
	supported: List[Any] = []
	heic: List[Any] = []
	unsupported: List[Any] = []
	for f in files:
		name = getattr(f, "filename", None)
		ctype = getattr(f, "content_type", None)
		if is_heic_file(name, ctype):
			heic.append(f)
		elif is_supported_image(name, ctype):
			supported.append(f)
		else:
			unsupported.append(f)
	return {"supported": supported, "heic": heic, "unsupported": unsupported}
