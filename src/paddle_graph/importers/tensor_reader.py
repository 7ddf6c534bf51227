"""
Tensor Payload Decoder.

Paddle stores every persistable variable in a side-car file named after the
variable. The file starts with a variable-length header that has to be walked
before the raw element data can be read:

.. code-block:: text

    uint32   version          (not validated)
    uint64   lod_level
    lod_level times:
      uint64 length
      bytes  [length]         (skipped)
    uint32   tensor version   (must be 0)
    int32    desc_size
    bytes    [desc_size]      (serialized tensor desc, skipped)
    bytes    ...              (packed row-major elements)

All integers are little-endian. The element type and shape come from the
variable declaration, not from the skipped descriptor bytes.
"""

import struct
from math import prod
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np

from paddle_graph.errors import ShapeMismatchError, TensorFormatError, TruncatedPayloadError

TENSOR_VERSION = 0

DTypeLike = Union[str, np.dtype, type]


class _ByteCursor:
  """Sequential little-endian reader over an in-memory payload."""

  def __init__(self, data: bytes, name: str = "") -> None:
    self._view = memoryview(data)
    self._pos = 0
    self._name = name

  @property
  def remaining(self) -> int:
    return len(self._view) - self._pos

  def _take(self, count: int, what: str) -> memoryview:
    if count < 0:
      raise TensorFormatError(f"Negative length {count} for {what}", variable=self._name or None)
    if count > self.remaining:
      raise TruncatedPayloadError(
        f"Payload truncated reading {what}: need {count} bytes at offset {self._pos}, have {self.remaining}",
        variable=self._name or None,
      )
    chunk = self._view[self._pos : self._pos + count]
    self._pos += count
    return chunk

  def read(self, fmt: str, what: str) -> int:
    size = struct.calcsize(fmt)
    (value,) = struct.unpack(fmt, self._take(size, what))
    return value

  def skip(self, count: int, what: str) -> None:
    self._take(count, what)

  def rest(self) -> memoryview:
    return self._take(self.remaining, "tensor data")


def decode_tensor(
  data: bytes,
  dtype: DTypeLike,
  shape: Sequence[int],
  expected_version: int = TENSOR_VERSION,
  name: str = "",
) -> np.ndarray:
  """
  Decodes one tensor payload into a dense array.

  Args:
      data (bytes): The complete payload file contents.
      dtype (DTypeLike): Fixed-width element type of the tensor.
      shape (Sequence[int]): Declared tensor shape. A single -1 is inferred from the body size.
      expected_version (int): Required value of the inner version tag.
      name (str): Variable name, attached to raised errors.

  Returns:
      np.ndarray: A writable array of `shape` holding the decoded elements.

  Raises:
      TruncatedPayloadError: If the stream ends inside the header.
      TensorFormatError: If the inner version tag differs from `expected_version`.
      ShapeMismatchError: If the body does not hold exactly prod(shape) elements.
  """
  cursor = _ByteCursor(data, name)
  variable = name or None

  cursor.read("<I", "version")
  lod_level = cursor.read("<Q", "lod level")
  for i in range(lod_level):
    length = cursor.read("<Q", f"lod[{i}] length")
    cursor.skip(length, f"lod[{i}] data")

  version = cursor.read("<I", "tensor version")
  if version != expected_version:
    raise TensorFormatError(f"Unsupported tensor version {version}, expected {expected_version}", variable=variable)

  desc_size = cursor.read("<i", "tensor desc size")
  cursor.skip(desc_size, "tensor desc")

  element_type = np.dtype(dtype).newbyteorder("<")
  body = cursor.rest()
  if len(body) % element_type.itemsize:
    raise ShapeMismatchError(
      f"Payload body of {len(body)} bytes is not a multiple of {element_type.name} width {element_type.itemsize}",
      variable=variable,
    )

  count = len(body) // element_type.itemsize
  dims = _fill_unknown_dim(shape, count, variable)
  if count != prod(dims):
    raise ShapeMismatchError(
      f"Payload holds {count} elements but shape {list(dims)} needs {prod(dims)}",
      variable=variable,
    )

  array = np.frombuffer(body, dtype=element_type, count=count)
  return array.astype(element_type.newbyteorder("="), copy=True).reshape(dims)


def encode_tensor(
  array: np.ndarray,
  lod: Iterable[bytes] = (),
  version: int = 0,
  tensor_version: int = TENSOR_VERSION,
  desc: bytes = b"",
) -> bytes:
  """
  Serializes an array using the payload layout read by `decode_tensor`.

  Args:
      array (np.ndarray): Tensor to encode.
      lod (Iterable[bytes]): Opaque LOD entries to embed in the header.
      version (int): Outer version tag.
      tensor_version (int): Inner version tag.
      desc (bytes): Opaque tensor descriptor bytes.

  Returns:
      bytes: The encoded payload.
  """
  lod = list(lod)
  parts = [struct.pack("<I", version), struct.pack("<Q", len(lod))]
  for entry in lod:
    parts.append(struct.pack("<Q", len(entry)))
    parts.append(bytes(entry))
  parts.append(struct.pack("<I", tensor_version))
  parts.append(struct.pack("<i", len(desc)))
  parts.append(bytes(desc))
  data = np.ascontiguousarray(array)
  parts.append(data.astype(data.dtype.newbyteorder("<"), copy=False).tobytes(order="C"))
  return b"".join(parts)


class TensorReader:
  """
  Loads tensor payload files from a model directory.

  Attributes:
      model_dir (Path): Directory holding one payload file per persistable variable.
      expected_version (int): Required inner version tag.
  """

  def __init__(self, model_dir: Union[str, Path], expected_version: int = TENSOR_VERSION) -> None:
    self.model_dir = Path(model_dir)
    self.expected_version = expected_version

  def path_for(self, name: str) -> Path:
    """Returns the payload path for a variable name."""
    return self.model_dir / name

  def exists(self, name: str) -> bool:
    """Returns True if a payload file exists for `name`."""
    return self.path_for(name).is_file()

  def load(self, name: str, shape: Sequence[int], dtype: DTypeLike = "float32") -> np.ndarray:
    """
    Reads and decodes the payload of a variable.

    Args:
        name (str): Variable name (and payload file name).
        shape (Sequence[int]): Declared shape.
        dtype (DTypeLike): Element type.

    Returns:
        np.ndarray: The decoded tensor.

    Raises:
        TensorFormatError: If the file does not exist or is malformed.
    """
    try:
      data = self.path_for(name).read_bytes()
    except FileNotFoundError as e:
      raise TensorFormatError(f"Payload file not found: {self.path_for(name)}", variable=name) from e
    except OSError as e:
      raise TensorFormatError(f"Cannot read payload file {self.path_for(name)}: {e}", variable=name) from e
    return decode_tensor(data, dtype, shape, expected_version=self.expected_version, name=name)

  def load_or_default(self, name: str, shape: Sequence[int], dtype: DTypeLike = "float32") -> np.ndarray:
    """
    Like `load`, but returns zeros of `shape` when no payload file exists.

    Args:
        name (str): Variable name.
        shape (Sequence[int]): Declared shape.
        dtype (DTypeLike): Element type.

    Returns:
        np.ndarray: Decoded tensor, or a zero-filled one.
    """
    if not self.exists(name):
      return np.zeros(_static_dims(shape), dtype=np.dtype(dtype))
    return self.load(name, shape, dtype)


def _static_dims(shape: Sequence[int]) -> Tuple[int, ...]:
  # A -1 batch dimension has no storage; a default constant gets one row.
  return tuple(1 if d < 0 else int(d) for d in shape)


def _fill_unknown_dim(shape: Sequence[int], count: int, variable: Optional[str]) -> Tuple[int, ...]:
  # A single -1 takes whatever extent the stored element count implies.
  dims = [int(d) for d in shape]
  unknown = [i for i, d in enumerate(dims) if d < 0]
  if len(unknown) > 1:
    raise ShapeMismatchError(f"Shape {dims} has more than one unknown dimension", variable=variable)
  if unknown:
    known = prod(d for i, d in enumerate(dims) if i != unknown[0])
    if known == 0 or count % known:
      raise ShapeMismatchError(f"Payload holds {count} elements, not a multiple of {known} for shape {dims}", variable=variable)
    dims[unknown[0]] = count // known
  return tuple(dims)
