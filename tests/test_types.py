from __future__ import annotations

import unittest

import numpy as np

from image_fixtures import noise
from merge_api.config import DEFAULT_MAX_OUT_PIXELS, EngineSettings
from merge_api.services.types import (
	DEFAULT_OVERLAP_SENSITIVITY,
	Axis,
	BackgroundColor,
	Direction,
	MergeOptions,
	NormalizedRaster,
)


class TestMergeOptions(unittest.TestCase):
	def test_defaults(self) -> None:
		for raw in (None, {}):
			opts = MergeOptions.from_mapping(raw)
			self.assertIs(opts.direction, Direction.VERTICAL)
			self.assertEqual(opts.background, BackgroundColor.white())
			self.assertEqual(opts.overlap_sensitivity, DEFAULT_OVERLAP_SENSITIVITY)
			self.assertTrue(opts.strip_chrome)
			self.assertIsNone(opts.max_out_pixels)

	def test_wire_keys(self) -> None:
		opts = MergeOptions.from_mapping(
			{
				"direction": "Smart",
				"background": {"r": 0, "g": 10, "b": 20, "a": 0},
				"overlapSensitivity": 80,
				"stripChrome": True,
				"maxOutPixels": 5000,
			}
		)
		self.assertIs(opts.direction, Direction.SMART)
		self.assertEqual(opts.background, BackgroundColor(0, 10, 20, 0))
		self.assertEqual(opts.overlap_sensitivity, 80)
		self.assertTrue(opts.strip_chrome)
		self.assertEqual(opts.max_out_pixels, 5000)
		self.assertEqual(MergeOptions.from_mapping(opts.to_dict()), opts)

	def test_snake_case_keys(self) -> None:
		opts = MergeOptions.from_mapping({"overlap_sensitivity": 3, "strip_chrome": False, "max_out_pixels": 9})
		self.assertEqual((opts.overlap_sensitivity, opts.strip_chrome, opts.max_out_pixels), (3, False, 9))

	def test_junk_values_are_tolerated(self) -> None:
		opts = MergeOptions.from_mapping(
			{
				"direction": "diagonal",
				"background": {"r": 300, "g": -4, "b": "x"},
				"overlapSensitivity": "lots",
				"maxOutPixels": -1,
			}
		)
		self.assertIs(opts.direction, Direction.VERTICAL)
		self.assertEqual(opts.background, BackgroundColor(255, 0, 255, 255))
		self.assertEqual(opts.overlap_sensitivity, DEFAULT_OVERLAP_SENSITIVITY)
		self.assertIsNone(opts.max_out_pixels)

	def test_strip_chrome_is_parsed_as_a_boolean(self) -> None:
		cases = {True: True, False: False, "true": True, "false": False, " FALSE ": False, "True": True}
		for raw, expected in cases.items():
			self.assertIs(MergeOptions.from_mapping({"stripChrome": raw}).strip_chrome, expected, raw)
		# anything else keeps the default
		for raw in ("no", "0", 0, 1, None, []):
			self.assertTrue(MergeOptions.from_mapping({"stripChrome": raw}).strip_chrome, raw)

	def test_sensitivity_is_rounded_and_clamped(self) -> None:
		cases = {-5: 0, 0: 0, 12.5: 13, 12.4: 12, 100: 100, 250: 100, "40": 40}
		for raw, expected in cases.items():
			opts = MergeOptions.from_mapping({"overlapSensitivity": raw})
			self.assertEqual(opts.overlap_sensitivity, expected, raw)

	def test_direction_axis(self) -> None:
		self.assertIs(Direction.VERTICAL.axis, Axis.VERTICAL)
		self.assertIs(Direction.HORIZONTAL.axis, Axis.HORIZONTAL)
		self.assertIs(Direction.SMART.axis, Axis.VERTICAL)


class TestBackgroundColor(unittest.TestCase):
	def test_parse_hex(self) -> None:
		self.assertEqual(BackgroundColor.parse("#ff8000"), BackgroundColor(255, 128, 0, 255))
		self.assertEqual(BackgroundColor.parse("#00000080"), BackgroundColor(0, 0, 0, 128))

	def test_parse_channels(self) -> None:
		self.assertEqual(BackgroundColor.parse("1, 2, 3"), BackgroundColor(1, 2, 3, 255))
		self.assertEqual(BackgroundColor.parse("1,2,3,4"), BackgroundColor(1, 2, 3, 4))

	def test_parse_rejects_garbage(self) -> None:
		for text in ("#fff", "red", "1,2", "#zzzzzz"):
			with self.assertRaises(ValueError, msg=text):
				BackgroundColor.parse(text)


class TestNormalizedRaster(unittest.TestCase):
	def test_crop_along_each_axis(self) -> None:
		raster = NormalizedRaster(pixels=noise(10, 20))
		self.assertIs(raster.crop(Axis.VERTICAL), raster)
		self.assertEqual(raster.crop(Axis.VERTICAL, leading=5, trailing=3).size, (10, 12))
		cropped = raster.crop(Axis.HORIZONTAL, leading=2)
		self.assertEqual(cropped.size, (8, 20))
		self.assertTrue(np.array_equal(cropped.pixels, raster.pixels[:, 2:]))


class TestEngineSettings(unittest.TestCase):
	def test_from_env(self) -> None:
		self.assertEqual(EngineSettings.from_env({}).max_out_pixels, DEFAULT_MAX_OUT_PIXELS)
		settings = EngineSettings.from_env({"MERGE_MAX_OUT_PIXELS": "1000", "MERGE_LOG_LEVEL": "debug"})
		self.assertEqual(settings.max_out_pixels, 1000)
		self.assertEqual(settings.log_level, "DEBUG")
		self.assertIsNone(EngineSettings.from_env({"MERGE_MAX_OUT_PIXELS": "0"}).max_out_pixels)


if __name__ == "__main__":
	unittest.main()
