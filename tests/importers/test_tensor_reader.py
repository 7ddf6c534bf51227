"""
Tests for the Tensor Payload Decoder.

Verifies:
1. Decoding of the zero header (no LOD, version 0, empty descriptor).
2. Skipping of LOD entries and descriptor bytes.
3. Rejection of wrong versions, truncated headers and mismatched bodies.
4. Zero-filled defaults for missing payload files.
"""

import struct

import numpy as np
import pytest

from paddle_graph.enums import ErrorKind
from paddle_graph.errors import ShapeMismatchError, TensorFormatError, TruncatedPayloadError
from paddle_graph.importers.tensor_reader import TensorReader, decode_tensor, encode_tensor


def _zero_header() -> bytes:
  return struct.pack("<IQIi", 0, 0, 0, 0)


def test_decode_zero_header():
  """Header of zeros followed by six floats decodes to a [2, 3] array."""
  values = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]
  data = _zero_header() + struct.pack("<6f", *values)

  result = decode_tensor(data, "float32", [2, 3])

  assert result.shape == (2, 3)
  assert result.dtype == np.float32
  assert result.flatten().tolist() == values


def test_decoded_array_is_writable():
  data = encode_tensor(np.arange(4, dtype=np.float32))
  result = decode_tensor(data, "float32", [4])
  result[0] = 42.0
  assert result[0] == 42.0


def test_encode_matches_manual_layout():
  array = np.array([[1.5, -2.0]], dtype=np.float32)
  assert encode_tensor(array) == _zero_header() + struct.pack("<2f", 1.5, -2.0)


def test_lod_and_descriptor_are_skipped():
  array = np.arange(12, dtype=np.int64).reshape(3, 4)
  data = encode_tensor(array, lod=[b"\x01" * 16, b"abc"], version=7, desc=b"opaque-desc")

  result = decode_tensor(data, "int64", [3, 4])

  np.testing.assert_array_equal(result, array)


def test_version_mismatch():
  data = encode_tensor(np.zeros(2, dtype=np.float32), tensor_version=1)

  with pytest.raises(TensorFormatError) as excinfo:
    decode_tensor(data, "float32", [2], name="w")

  assert not isinstance(excinfo.value, TruncatedPayloadError)
  assert excinfo.value.kind is ErrorKind.FORMAT
  assert excinfo.value.variable == "w"


def test_expected_version_is_configurable():
  data = encode_tensor(np.ones(2, dtype=np.float32), tensor_version=3)
  result = decode_tensor(data, "float32", [2], expected_version=3)
  assert result.tolist() == [1.0, 1.0]


def test_truncated_header():
  data = encode_tensor(np.zeros(2, dtype=np.float32))
  with pytest.raises(TruncatedPayloadError, match="lod level"):
    decode_tensor(data[:10], "float32", [2])


def test_truncated_lod_entry():
  data = struct.pack("<IQQ", 0, 1, 100) + b"short"
  with pytest.raises(TruncatedPayloadError):
    decode_tensor(data, "float32", [1])


def test_negative_descriptor_size():
  data = struct.pack("<IQIi", 0, 0, 0, -4)
  with pytest.raises(TensorFormatError, match="Negative length"):
    decode_tensor(data, "float32", [0])


def test_element_count_mismatch():
  data = encode_tensor(np.zeros(6, dtype=np.float32))
  with pytest.raises(ShapeMismatchError, match="6 elements"):
    decode_tensor(data, "float32", [2, 2])


def test_body_not_multiple_of_width():
  data = encode_tensor(np.zeros(2, dtype=np.float32)) + b"\x00"
  with pytest.raises(ShapeMismatchError, match="not a multiple"):
    decode_tensor(data, "float32", [2])


def test_reader_load_and_exists(tmp_path):
  array = np.arange(6, dtype=np.float32).reshape(2, 3)
  (tmp_path / "weights").write_bytes(encode_tensor(array))
  reader = TensorReader(tmp_path)

  assert reader.exists("weights")
  assert not reader.exists("bias")
  np.testing.assert_array_equal(reader.load("weights", [2, 3]), array)


def test_reader_load_missing_file(tmp_path):
  with pytest.raises(TensorFormatError, match="not found") as excinfo:
    TensorReader(tmp_path).load("absent", [2])
  assert excinfo.value.variable == "absent"


def test_load_or_default_missing_returns_zeros(tmp_path):
  """A missing payload for shape [2, 3] yields six zeros."""
  result = TensorReader(tmp_path).load_or_default("absent", [2, 3])

  assert result.shape == (2, 3)
  assert result.size == 6
  assert not result.any()


def test_load_or_default_unknown_dimension(tmp_path):
  result = TensorReader(tmp_path).load_or_default("absent", [-1, 4])
  assert result.shape == (1, 4)


def test_load_or_default_prefers_payload(tmp_path):
  (tmp_path / "b").write_bytes(encode_tensor(np.full(3, 2.5, dtype=np.float32)))
  result = TensorReader(tmp_path).load_or_default("b", [3])
  assert result.tolist() == [2.5, 2.5, 2.5]


def test_reader_applies_expected_version(tmp_path):
  (tmp_path / "w").write_bytes(encode_tensor(np.zeros(1, dtype=np.float32), tensor_version=1))
  with pytest.raises(TensorFormatError):
    TensorReader(tmp_path).load("w", [1])
  assert TensorReader(tmp_path, expected_version=1).load("w", [1]).tolist() == [0.0]


def test_unknown_dimension_is_inferred_from_body():
  data = encode_tensor(np.arange(8, dtype=np.float32).reshape(2, 4))
  result = decode_tensor(data, "float32", [-1, 4])
  assert result.shape == (2, 4)


def test_two_unknown_dimensions_rejected():
  data = encode_tensor(np.zeros(8, dtype=np.float32))
  with pytest.raises(ShapeMismatchError, match="more than one unknown"):
    decode_tensor(data, "float32", [-1, -1])


def test_unknown_dimension_must_divide_body():
  data = encode_tensor(np.zeros(6, dtype=np.float32))
  with pytest.raises(ShapeMismatchError, match="not a multiple of 4"):
    decode_tensor(data, "float32", [-1, 4])


def test_reader_unreadable_payload(tmp_path):
  """A payload path that cannot be read surfaces as a format error, not an OSError."""
  (tmp_path / "w").mkdir()

  with pytest.raises(TensorFormatError, match="Cannot read payload") as excinfo:
    TensorReader(tmp_path).load("w", [2])

  assert excinfo.value.variable == "w"
  assert isinstance(excinfo.value.__cause__, OSError)
