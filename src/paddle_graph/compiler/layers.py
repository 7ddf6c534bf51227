"""
Layer Library.

One class per layer kind that can appear in a converted graph. Each layer owns
its typed input and output ports and its kind-specific parameters (weights are
numpy arrays). Output shapes are inferred at construction from input shapes
and parameters, in NCHW layout.

A dimension of ``-1`` marks an unknown extent (typically the batch size of a
feed variable); it propagates through shape inference unchanged.
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from paddle_graph.compiler.ir import InputPort, OutputPort, Shape
from paddle_graph.enums import LayerKind, Padding
from paddle_graph.errors import PortConnectionError

UNKNOWN = -1


def _shape(dims: Sequence[int]) -> Shape:
  return tuple(int(d) for d in dims)


def _require_rank(shape: Shape, rank: int, layer: str) -> None:
  if len(shape) != rank:
    raise PortConnectionError(f"{layer} expects a rank-{rank} input, got shape {list(shape)}")


def _require_rank_at_least(shape: Shape, rank: int, layer: str) -> None:
  if len(shape) < rank:
    raise PortConnectionError(f"{layer} expects an input of rank {rank} or more, got shape {list(shape)}")


def _window_extent(size: int, kernel: int, stride: int, padding: Padding) -> int:
  """Output extent of one spatial axis for a windowed op."""
  if size == UNKNOWN:
    return UNKNOWN
  if padding is Padding.SAME:
    return math.ceil(size / stride)
  extent = (size - kernel) // stride + 1
  if extent <= 0:
    raise PortConnectionError(f"Window {kernel} with stride {stride} does not fit input extent {size}")
  return extent


class Layer:
  """
  Base class of all graph nodes.

  Attributes:
      kind (LayerKind): Layer kind tag, fixed per subclass.
      inputs (List[InputPort]): Input ports in slot order.
      outputs (List[OutputPort]): Output ports in slot order.
  """

  kind: LayerKind

  def __init__(self) -> None:
    self.inputs: List[InputPort] = []
    self.outputs: List[OutputPort] = []

  def _add_input(self, name: str, shape: Sequence[int]) -> InputPort:
    port = InputPort(name, _shape(shape))
    self.inputs.append(port)
    return port

  def _add_output(self, name: str, shape: Sequence[int]) -> OutputPort:
    port = OutputPort(name, _shape(shape))
    self.outputs.append(port)
    return port

  @property
  def input(self) -> InputPort:
    """The sole input port of single-input layers."""
    return self.inputs[0]

  @property
  def output(self) -> OutputPort:
    """The sole output port of single-output layers."""
    return self.outputs[0]

  def params(self) -> Dict[str, Any]:
    """
    Kind-specific scalar parameters, for inspection and logging.

    Returns:
        Dict[str, Any]: Parameter name -> value. Weights are omitted.
    """
    return {}

  def __repr__(self) -> str:
    shapes = ", ".join(str(list(p.shape)) for p in self.outputs)
    return f"{self.kind.value}({shapes})"


class InputLayer(Layer):
  """Boundary producer: data fed by the caller."""

  kind = LayerKind.INPUT

  def __init__(self, shape: Sequence[int]) -> None:
    super().__init__()
    self._add_output("output", shape)


class OutputLayer(Layer):
  """Boundary consumer: data returned to the caller."""

  kind = LayerKind.OUTPUT

  def __init__(self, shape: Sequence[int]) -> None:
    super().__init__()
    self._add_input("input", shape)


class Constant(Layer):
  """A tensor known at conversion time."""

  kind = LayerKind.CONSTANT

  def __init__(self, value: np.ndarray) -> None:
    super().__init__()
    self.value = value
    self._add_output("output", value.shape)

  def params(self) -> Dict[str, Any]:
    return {"dtype": self.value.dtype.name}


class _Convolution(Layer):
  """Shared construction of 2-D convolutions over NCHW inputs."""

  def __init__(
    self,
    input_shape: Sequence[int],
    weights: np.ndarray,
    bias: Optional[np.ndarray],
    padding: Padding,
    strides: Tuple[int, int],
  ) -> None:
    super().__init__()
    input_shape = _shape(input_shape)
    _require_rank(input_shape, 4, self.kind.value)
    if weights.ndim != 4:
      raise PortConnectionError(f"{self.kind.value} weights must be rank 4, got {list(weights.shape)}")

    out_channels = self._output_channels(input_shape[1], weights.shape)
    self.weights = weights
    self.bias = bias
    self.padding = padding
    self.strides = (int(strides[0]), int(strides[1]))
    self.kernel = (int(weights.shape[2]), int(weights.shape[3]))

    batch, _, height, width = input_shape
    out_h = _window_extent(height, self.kernel[0], self.strides[0], padding)
    out_w = _window_extent(width, self.kernel[1], self.strides[1], padding)
    self._add_input("input", input_shape)
    self._add_output("output", (batch, out_channels, out_h, out_w))

  def _output_channels(self, channels: int, weights_shape: Tuple[int, ...]) -> int:
    raise NotImplementedError

  def params(self) -> Dict[str, Any]:
    return {"padding": self.padding.value, "strides": list(self.strides), "kernel": list(self.kernel)}


class Conv2d(_Convolution):
  """
  Standard 2-D convolution.

  Weights are laid out ``[out_channels, in_channels, kernel_h, kernel_w]``.
  """

  kind = LayerKind.CONV2D

  def _output_channels(self, channels: int, weights_shape: Tuple[int, ...]) -> int:
    out_channels, in_channels = weights_shape[0], weights_shape[1]
    if channels != UNKNOWN and channels != in_channels:
      raise PortConnectionError(f"{self.kind.value} weights expect {in_channels} input channels, input has {channels}")
    return int(out_channels)


class DepthwiseConv2d(_Convolution):
  """
  Depthwise 2-D convolution.

  Weights are laid out ``[multiplier, channels, kernel_h, kernel_w]``, i.e. the
  Paddle filter with its first two axes swapped.
  """

  kind = LayerKind.DEPTHWISE_CONV2D

  def _output_channels(self, channels: int, weights_shape: Tuple[int, ...]) -> int:
    out_channels = weights_shape[1]
    if channels != UNKNOWN and out_channels % channels:
      raise PortConnectionError(f"{self.kind.value} with {out_channels} filters cannot cover {channels} channels")
    return int(out_channels)


class Add(Layer):
  """
  Elementwise addition with Paddle broadcasting.

  When ``b`` has a lower rank than ``a`` and ``axis`` is non-negative, ``b``'s
  dimensions are aligned to ``a`` starting at ``axis``; otherwise trailing
  dimensions are aligned as in numpy.
  """

  kind = LayerKind.ADD

  def __init__(self, a_shape: Sequence[int], b_shape: Sequence[int], axis: int = -1) -> None:
    super().__init__()
    a_shape, b_shape = _shape(a_shape), _shape(b_shape)
    self.axis = int(axis)
    self._add_input("a", a_shape)
    self._add_input("b", b_shape)
    self._add_output("output", _broadcast(a_shape, b_shape, self.axis))

  def params(self) -> Dict[str, Any]:
    return {"axis": self.axis}


def _broadcast(a: Shape, b: Shape, axis: int) -> Shape:
  if len(b) < len(a) and axis >= 0:
    if axis + len(b) > len(a):
      raise PortConnectionError(f"Cannot align shape {list(b)} to {list(a)} at axis {axis}")
    b = (1,) * axis + b + (1,) * (len(a) - axis - len(b))

  rank = max(len(a), len(b))
  a = (1,) * (rank - len(a)) + a
  b = (1,) * (rank - len(b)) + b
  dims = []
  for x, y in zip(a, b):
    if x == y or y == 1:
      dims.append(x)
    elif x == 1:
      dims.append(y)
    elif UNKNOWN in (x, y):
      dims.append(x if y == UNKNOWN else y)
    else:
      raise PortConnectionError(f"Shapes {list(a)} and {list(b)} are not broadcastable")
  return tuple(dims)


class BatchNormalization(Layer):
  """Inference-mode batch normalization over the channel axis."""

  kind = LayerKind.BATCH_NORMALIZATION

  def __init__(
    self,
    input_shape: Sequence[int],
    scale: np.ndarray,
    offset: np.ndarray,
    mean: np.ndarray,
    variance: np.ndarray,
    epsilon: float,
  ) -> None:
    super().__init__()
    sizes = {stat.size for stat in (scale, offset, mean, variance)}
    if len(sizes) != 1:
      raise PortConnectionError(f"{self.kind.value} statistics differ in size: {sorted(sizes)}")
    input_shape = _shape(input_shape)
    _require_rank_at_least(input_shape, 2, self.kind.value)
    (size,) = sizes
    channels = input_shape[1]
    if channels != UNKNOWN and channels != size:
      raise PortConnectionError(f"{self.kind.value} has {size} statistics for {channels} input channels")

    self.scale = scale
    self.offset = offset
    self.mean = mean
    self.variance = variance
    self.epsilon = float(epsilon)
    self._add_input("input", input_shape)
    self._add_output("output", input_shape)

  def params(self) -> Dict[str, Any]:
    return {"epsilon": self.epsilon}


class Relu(Layer):
  kind = LayerKind.RELU

  def __init__(self, shape: Sequence[int]) -> None:
    super().__init__()
    self._add_input("input", shape)
    self._add_output("output", shape)


class Softmax(Layer):
  kind = LayerKind.SOFTMAX

  def __init__(self, shape: Sequence[int], axis: int = -1) -> None:
    super().__init__()
    self.axis = int(axis)
    self._add_input("input", shape)
    self._add_output("output", shape)

  def params(self) -> Dict[str, Any]:
    return {"axis": self.axis}


class AveragePool2d(Layer):
  """Average pooling over NCHW spatial axes."""

  kind = LayerKind.AVERAGE_POOL2D

  def __init__(
    self,
    input_shape: Sequence[int],
    padding: Padding,
    kernel: Tuple[int, int],
    strides: Tuple[int, int],
  ) -> None:
    super().__init__()
    input_shape = _shape(input_shape)
    _require_rank(input_shape, 4, self.kind.value)
    self.padding = padding
    self.kernel = (int(kernel[0]), int(kernel[1]))
    self.strides = (int(strides[0]), int(strides[1]))

    batch, channels, height, width = input_shape
    out_h = _window_extent(height, self.kernel[0], self.strides[0], padding)
    out_w = _window_extent(width, self.kernel[1], self.strides[1], padding)
    self._add_input("input", input_shape)
    self._add_output("output", (batch, channels, out_h, out_w))

  def params(self) -> Dict[str, Any]:
    return {"padding": self.padding.value, "kernel": list(self.kernel), "strides": list(self.strides)}


class Reshape(Layer):
  """
  Reshape with Paddle's special values: ``0`` copies the input dimension at
  the same index and a single ``-1`` is inferred from the element count.
  """

  kind = LayerKind.RESHAPE

  def __init__(self, input_shape: Sequence[int], new_shape: Sequence[int]) -> None:
    super().__init__()
    input_shape = _shape(input_shape)
    self.new_shape = _shape(new_shape)
    self._add_input("input", input_shape)
    self._add_output("output", _infer_reshape(input_shape, self.new_shape))

  def params(self) -> Dict[str, Any]:
    return {"shape": list(self.new_shape)}


def _infer_reshape(input_shape: Shape, new_shape: Shape) -> Shape:
  dims = []
  for i, d in enumerate(new_shape):
    if d == 0:
      if i >= len(input_shape):
        raise PortConnectionError(f"Reshape copies dim {i} but input {list(input_shape)} has rank {len(input_shape)}")
      dims.append(input_shape[i])
    elif d < UNKNOWN:
      raise PortConnectionError(f"Invalid reshape dimension {d}")
    else:
      dims.append(d)

  inferred = [i for i, d in enumerate(new_shape) if d == UNKNOWN]
  if len(inferred) > 1:
    raise PortConnectionError(f"Reshape target {list(new_shape)} has more than one unknown dimension")

  if UNKNOWN in input_shape:
    return tuple(dims)

  total = math.prod(input_shape)
  known = math.prod(d for d in dims if d != UNKNOWN)
  if inferred:
    if known == 0 or total % known:
      raise PortConnectionError(f"Cannot reshape {list(input_shape)} into {list(new_shape)}")
    dims[inferred[0]] = total // known
  elif known != total:
    raise PortConnectionError(f"Cannot reshape {list(input_shape)} into {list(new_shape)}")
  return tuple(dims)


class SpaceToBatch(Layer):
  """
  Pads the spatial axes, then folds ``block_shape`` blocks into the batch axis.
  """

  kind = LayerKind.SPACE_TO_BATCH

  def __init__(
    self,
    input_shape: Sequence[int],
    block_shape: Tuple[int, int],
    paddings: Tuple[Tuple[int, int], Tuple[int, int]],
  ) -> None:
    super().__init__()
    input_shape = _shape(input_shape)
    _require_rank(input_shape, 4, self.kind.value)
    self.block_shape = (int(block_shape[0]), int(block_shape[1]))
    self.paddings = tuple((int(before), int(after)) for before, after in paddings)

    batch, channels, height, width = input_shape
    spatial = []
    for size, block, (before, after) in zip((height, width), self.block_shape, self.paddings):
      if size == UNKNOWN:
        spatial.append(UNKNOWN)
        continue
      padded = size + before + after
      if padded % block:
        raise PortConnectionError(f"Padded extent {padded} is not divisible by block {block}")
      spatial.append(padded // block)

    blocks = self.block_shape[0] * self.block_shape[1]
    out_batch = UNKNOWN if batch == UNKNOWN else batch * blocks
    self._add_input("input", input_shape)
    self._add_output("output", (out_batch, channels, spatial[0], spatial[1]))

  def params(self) -> Dict[str, Any]:
    return {"block_shape": list(self.block_shape), "paddings": [list(p) for p in self.paddings]}
