from __future__ import annotations

import unittest
from io import BytesIO

import numpy as np
from PIL import Image, features

from image_fixtures import encode, jpeg_with_orientation, noise, solid, solid_png
from merge_api.services.decoder import decode
from merge_api.services.errors import DecodeFailedError, UnsupportedFormatError


class TestDecode(unittest.TestCase):
	def test_png_is_decoded_to_rgba(self) -> None:
		raster = decode(solid_png(12, 7, (1, 2, 3, 128)))
		self.assertEqual((raster.width, raster.height), (12, 7))
		self.assertEqual(raster.pixels.shape, (7, 12, 4))
		self.assertEqual(raster.pixels.dtype, np.uint8)
		self.assertEqual(tuple(raster.pixels[3, 5]), (1, 2, 3, 128))
		self.assertEqual(raster.orientation, 1)
		self.assertEqual(raster.format, "PNG")

	def test_decoding_is_deterministic(self) -> None:
		data = encode(noise(40, 30, seed=3))
		a = decode(data)
		b = decode(data)
		self.assertTrue(np.array_equal(a.pixels, b.pixels))

	def test_format_is_sniffed_not_named(self) -> None:
		data = encode(solid(4, 4, (9, 9, 9, 255)), "GIF")
		raster = decode(data, index=0, file_name="looks_like.png")
		self.assertEqual(raster.format, "GIF")

	def test_tiff_and_jpeg_are_supported(self) -> None:
		tiff = decode(encode(solid(5, 3, (0, 0, 0, 255)), "TIFF"))
		self.assertEqual((tiff.format, tiff.width, tiff.height), ("TIFF", 5, 3))
		jpeg = decode(encode(solid(5, 3, (0, 0, 0, 255)), "JPEG"))
		self.assertEqual((jpeg.format, jpeg.width, jpeg.height), ("JPEG", 5, 3))
		self.assertEqual(jpeg.pixels[0, 0, 3], 255)

	@unittest.skipUnless(features.check("webp"), "Pillow built without WebP")
	def test_webp_is_supported(self) -> None:
		raster = decode(encode(solid(6, 4, (0, 200, 0, 255)), "WEBP"))
		self.assertEqual((raster.width, raster.height), (6, 4))
		self.assertEqual(raster.format, "WEBP")

	def test_animated_gif_uses_first_frame(self) -> None:
		red = Image.fromarray(solid(8, 8, (255, 0, 0, 255))).convert("RGB")
		blue = Image.fromarray(solid(8, 8, (0, 0, 255, 255))).convert("RGB")
		buf = BytesIO()
		red.save(buf, format="GIF", save_all=True, append_images=[blue], duration=100, loop=0)
		raster = decode(buf.getvalue())
		self.assertEqual(tuple(raster.pixels[0, 0]), (255, 0, 0, 255))

	def test_sixteen_bit_gray_is_reduced_to_eight_bits(self) -> None:
		buf = BytesIO()
		Image.fromarray(np.full((4, 4), 0x8000, dtype=np.uint16)).save(buf, format="PNG")
		raster = decode(buf.getvalue())
		self.assertEqual(tuple(raster.pixels[0, 0]), (128, 128, 128, 255))

	def test_jpeg_orientation_is_read(self) -> None:
		self.assertEqual(decode(jpeg_with_orientation(8, 4, 6)).orientation, 6)

	def test_truncated_png_fails_to_decode(self) -> None:
		data = encode(noise(32, 32, seed=1))
		with self.assertRaises(DecodeFailedError) as ctx:
			decode(data[: len(data) // 2], index=3, file_name="cut.png")
		err = ctx.exception
		self.assertEqual(err.code, "DECODE_FAILED")
		self.assertEqual(err.file_index, 3)
		self.assertEqual(err.file_name, "cut.png")
		self.assertIn("index 3", err.message)
		self.assertIn("cut.png", err.message)

	def test_unknown_bytes_are_unsupported(self) -> None:
		with self.assertRaises(UnsupportedFormatError) as ctx:
			decode(bytes([0, 1, 2, 3]), index=1)
		self.assertEqual(ctx.exception.code, "UNSUPPORTED_FORMAT")
		self.assertEqual(ctx.exception.file_index, 1)

	def test_empty_buffer_is_unsupported(self) -> None:
		with self.assertRaises(UnsupportedFormatError):
			decode(b"")

	def test_heic_bytes_are_unsupported(self) -> None:
		heic = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 32
		with self.assertRaises(UnsupportedFormatError) as ctx:
			decode(heic)
		self.assertIn("HEIC", ctx.exception.message)


if __name__ == "__main__":
	unittest.main()
