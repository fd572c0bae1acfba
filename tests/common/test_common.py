"""Unit tests for the hmatrix check helpers and configuration."""

import os
import unittest
from unittest import mock

import torch

from hmatrix import common
from hmatrix.common import MatrixCheckError


class TestChecks(unittest.TestCase):
    """Test suite for the check helpers."""

    def test_check_passes(self):
        common.check(True, "unused")
        common.check_gt(3, 0, "row")
        common.check_eq(4, 4, "col")
        common.check_not_none(object(), "base")

    def test_check_message_names_location(self):
        """Test that a failed check names the condition and the caller."""
        with self.assertRaises(MatrixCheckError) as ctx:
            common.check(False, "shape must match")
        message = str(ctx.exception)
        self.assertIn("shape must match", message)
        self.assertIn("test_common.py:", message)
        self.assertIn("test_check_message_names_location", message)

    def test_check_gt(self):
        with self.assertRaises(MatrixCheckError) as ctx:
            common.check_gt(0, 0, "row")
        self.assertIn("row > 0 failed, got 0", str(ctx.exception))

    def test_check_int(self):
        common.check_int(3, "row")
        for value in [2.7, 4.0, True, "4", None]:
            with self.assertRaises(MatrixCheckError) as ctx:
                common.check_int(value, "row")
            self.assertIn("row must be an int", str(ctx.exception))

    def test_check_eq(self):
        with self.assertRaises(MatrixCheckError) as ctx:
            common.check_eq(4, 5, "col")
        self.assertIn("col == 5 failed, got 4", str(ctx.exception))

    def test_check_not_none(self):
        with self.assertRaises(MatrixCheckError) as ctx:
            common.check_not_none(None, "base")
        self.assertIn("base must not be None", str(ctx.exception))

    def test_check_error_is_runtime_error(self):
        self.assertTrue(issubclass(MatrixCheckError, RuntimeError))

    def test_failed_check_is_logged(self):
        with self.assertLogs("hmatrix.common", level="ERROR") as logs:
            with self.assertRaises(MatrixCheckError):
                common.check(False, "broken fixture")
        self.assertIn("broken fixture", logs.output[0])


class TestDeviceCall(unittest.TestCase):
    """Test suite for device_call."""

    def test_wraps_runtime_error(self):
        """Test that a device RuntimeError becomes a chained MatrixCheckError."""
        with self.assertLogs("hmatrix.common", level="ERROR"):
            with self.assertRaises(MatrixCheckError) as ctx:
                with common.device_call("copy host to device"):
                    raise RuntimeError("an illegal memory access was encountered")
        self.assertIn("copy host to device", str(ctx.exception))
        self.assertIn("illegal memory access", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

    def test_wraps_out_of_memory(self):
        with self.assertLogs("hmatrix.common", level="ERROR"):
            with self.assertRaises(MatrixCheckError) as ctx:
                with common.device_call("allocate device buffer"):
                    raise torch.cuda.OutOfMemoryError("CUDA out of memory")
        self.assertIn("allocate device buffer: device out of memory", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, torch.cuda.OutOfMemoryError)

    def test_passes_check_error_through(self):
        with self.assertLogs("hmatrix.common", level="ERROR"):
            with self.assertRaises(MatrixCheckError) as ctx:
                with common.device_call("zero device buffer"):
                    common.check(False, "inner")
        self.assertIsNone(ctx.exception.__cause__)
        self.assertNotIn("zero device buffer", str(ctx.exception))

    def test_leaves_other_errors(self):
        with self.assertRaises(ValueError):
            with common.device_call("copy"):
                raise ValueError("not a device error")

    def test_real_tensor_error(self):
        """Test a real torch failure inside the block."""
        host = torch.empty((2, 2), dtype=torch.float16)
        with self.assertLogs("hmatrix.common", level="ERROR"):
            with self.assertRaises(MatrixCheckError):
                with common.device_call("copy"):
                    host.copy_(torch.empty((3, 3), dtype=torch.float16))


class TestConfiguration(unittest.TestCase):
    """Test suite for environment configuration."""

    def test_default_device(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop(common.DEFAULT_DEVICE_ENV, None)
            self.assertEqual(common.default_device(), torch.device("cuda"))

    def test_default_device_from_env(self):
        with mock.patch.dict(os.environ, {common.DEFAULT_DEVICE_ENV: "cpu"}):
            self.assertEqual(common.default_device(), torch.device("cpu"))

    def test_default_log_level(self):
        with mock.patch.dict(os.environ, {common.LOG_LEVEL_ENV: "debug"}):
            self.assertEqual(common.default_log_level(), "DEBUG")
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop(common.LOG_LEVEL_ENV, None)
            self.assertEqual(common.default_log_level(), "INFO")

    def test_synchronize_cpu(self):
        common.synchronize(torch.device("cpu"))


if __name__ == "__main__":
    unittest.main()
