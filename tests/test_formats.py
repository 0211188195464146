from __future__ import annotations

import unittest
from types import SimpleNamespace

from image_fixtures import encode, solid
from merge_api.services.formats import categorize_files, is_heic_bytes, is_heic_file, sniff_format

HEIC = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00"


def _upload(filename, content_type):
	return SimpleNamespace(filename=filename, content_type=content_type)


class TestSniffFormat(unittest.TestCase):
	def test_magic_bytes(self) -> None:
		px = solid(2, 2, (0, 0, 0, 255))
		for fmt in ("PNG", "JPEG", "GIF", "TIFF"):
			self.assertEqual(sniff_format(encode(px, fmt)), fmt)
		self.assertEqual(sniff_format(b"RIFF\x00\x00\x00\x00WEBPVP8 "), "WEBP")

	def test_unknown_bytes(self) -> None:
		for data in (b"", b"BM\x00\x00", b"RIFF\x00\x00\x00\x00WAVE", HEIC):
			self.assertIsNone(sniff_format(data))

	def test_heic_brands(self) -> None:
		self.assertTrue(is_heic_bytes(HEIC))
		self.assertTrue(is_heic_bytes(b"\x00\x00\x00\x18ftypmif1"))
		self.assertFalse(is_heic_bytes(b"\x00\x00\x00\x18ftypisom"))
		self.assertFalse(is_heic_bytes(b""))


class TestCategorize(unittest.TestCase):
	def test_heic_by_mime_or_extension(self) -> None:
		self.assertTrue(is_heic_file("a.jpg", "image/HEIC"))
		self.assertTrue(is_heic_file("IMG_0001.HEIC", "application/octet-stream"))
		self.assertFalse(is_heic_file("a.png", "image/png"))

	def test_groups_preserve_order(self) -> None:
		files = [
			_upload("a.png", "image/png"),
			_upload("notes.txt", "text/plain"),
			_upload("b.heic", "image/heic"),
			_upload("c", "image/jpeg"),
			_upload("d.WEBP", None),
		]
		groups = categorize_files(files)
		self.assertEqual([f.filename for f in groups["supported"]], ["a.png", "c", "d.WEBP"])
		self.assertEqual([f.filename for f in groups["heic"]], ["b.heic"])
		self.assertEqual([f.filename for f in groups["unsupported"]], ["notes.txt"])


if __name__ == "__main__":
	unittest.main()
