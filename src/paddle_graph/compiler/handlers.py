"""
Operator Handlers.

One function per supported operator type. A handler reads its operator's
arguments and attributes through a `LoweringContext`, decodes weight tensors
eagerly, and returns a `Lowering`: a small fragment of layers plus

- ``pending`` bindings: input ports that still need a source, keyed by the
  variable name that will feed them;
- ``produced`` bindings: variable names now satisfied by one of the fragment's
  output ports.

Port references inside a `Lowering` are local to the fragment; the resolver
rebases them when it appends the fragment to the graph arena.

Dispatch goes through the closed `OpType` table at the bottom of this module.
Tags outside it raise `UnsupportedOperationError`.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from paddle_graph.compiler.ir import PortRef, Shape
from paddle_graph.compiler.layers import (
  Add,
  AveragePool2d,
  BatchNormalization,
  Conv2d,
  DepthwiseConv2d,
  InputLayer,
  Layer,
  OutputLayer,
  Relu,
  Reshape,
  Softmax,
  SpaceToBatch,
)
from paddle_graph.enums import OpType, Padding, PoolingType
from paddle_graph.errors import ConversionError, UnsupportedConfigurationError, UnsupportedOperationError
from paddle_graph.importers.descriptors import BlockAccessor, OperatorDescriptor
from paddle_graph.importers.tensor_reader import TensorReader

# SpaceToBatch parameters that turn a stride-2 3x3 "same" convolution into a valid one.
_STRIDED_SAME_BLOCK = (1, 1)
_STRIDED_SAME_PADDINGS = ((1, 1), (1, 1))


@dataclass
class LoweringContext:
  """
  Read-only view handed to every handler.

  Attributes:
      block (BlockAccessor): Descriptor lookups for the block being converted.
      tensors (TensorReader): Payload reader for weights and constants.
      default_dtype (str): Element type for variables declaring none.
  """

  block: BlockAccessor
  tensors: TensorReader
  default_dtype: str = "float32"

  def shape(self, name: str) -> Shape:
    return self.block.var_shape(name)

  def dtype(self, name: str) -> str:
    return self.block.var(name).dtype or self.default_dtype

  def load(self, name: str) -> np.ndarray:
    """
    Decodes a variable's payload in its declared shape and dtype.

    Args:
        name (str): Variable name.

    Returns:
        np.ndarray: The tensor.
    """
    return self.tensors.load(name, self.shape(name), self.dtype(name))

  def load_or_default(self, name: str) -> np.ndarray:
    """Like `load`, returning zeros when the payload file is absent."""
    return self.tensors.load_or_default(name, self.shape(name), self.dtype(name))


@dataclass
class Lowering:
  """
  The layers and bindings produced for one operator.

  Attributes:
      layers (List[Layer]): New nodes, addressed by local index.
      links (List[Tuple[PortRef, PortRef]]): Connections inside the fragment.
      pending (List[Tuple[PortRef, str]]): Unbound input port -> source variable.
      produced (List[Tuple[str, PortRef]]): Variable -> output port now producing it.
      boundary_inputs (List[int]): Local indices of Input layers to register as graph inputs.
      boundary_outputs (List[int]): Local indices of Output layers to register as graph outputs.
      provisional (Dict[str, int]): Variable -> local Input layer that a payload may replace.
  """

  layers: List[Layer] = field(default_factory=list)
  links: List[Tuple[PortRef, PortRef]] = field(default_factory=list)
  pending: List[Tuple[PortRef, str]] = field(default_factory=list)
  produced: List[Tuple[str, PortRef]] = field(default_factory=list)
  boundary_inputs: List[int] = field(default_factory=list)
  boundary_outputs: List[int] = field(default_factory=list)
  provisional: Dict[str, int] = field(default_factory=dict)

  def add(self, layer: Layer) -> int:
    self.layers.append(layer)
    return len(self.layers) - 1

  def link(self, source: int, target: int, source_slot: int = 0, target_slot: int = 0) -> None:
    self.links.append((PortRef(source, source_slot), PortRef(target, target_slot)))

  def expect(self, node: int, variable: str, slot: int = 0) -> None:
    self.pending.append((PortRef(node, slot), variable))

  def provide(self, variable: str, node: int, slot: int = 0) -> None:
    self.produced.append((variable, PortRef(node, slot)))


Handler = Callable[[OperatorDescriptor, LoweringContext], Lowering]


def _int_pair(ctx: LoweringContext, op: OperatorDescriptor, name: str) -> Tuple[int, int]:
  value = ctx.block.attr(op, name)
  if not isinstance(value, (list, tuple)) or len(value) != 2:
    raise UnsupportedConfigurationError(f"Attribute '{name}' must hold two integers, got {value!r}", op_type=op.type)
  return int(value[0]), int(value[1])


def _is_strided_same(paddings: Tuple[int, int], strides: Tuple[int, int], kernel: Sequence[int]) -> bool:
  return paddings == (1, 1) and strides == (2, 2) and tuple(kernel) == (3, 3)


def _symmetric_padding(paddings: Tuple[int, int], op: OperatorDescriptor) -> Padding:
  if paddings[0] != paddings[1] or paddings[0] not in (0, 1):
    raise UnsupportedConfigurationError(f"Unsupported paddings {list(paddings)}", op_type=op.type)
  return Padding.VALID if paddings[0] == 0 else Padding.SAME


def convert_feed(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  output = ctx.block.output_arg(op, "Out")
  lowering = Lowering()
  node = lowering.add(InputLayer(ctx.shape(output)))
  lowering.provide(output, node)
  lowering.boundary_inputs.append(node)
  lowering.provisional[output] = node
  return lowering


def convert_fetch(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  source = ctx.block.input_arg(op, "X")
  lowering = Lowering()
  node = lowering.add(OutputLayer(ctx.shape(source)))
  lowering.expect(node, source)
  lowering.boundary_outputs.append(node)
  return lowering


def convert_conv2d(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  """
  Lowers ``conv2d`` into Conv2d or DepthwiseConv2d.

  ``groups == 1`` selects a standard convolution and ``groups`` equal to the
  filter count a depthwise one, whose filter gets its first two axes swapped.
  Paddings ``[1, 1]`` with strides ``[2, 2]`` on a 3x3 kernel are rewritten as
  SpaceToBatch (block ``[1, 1]``, pad ``[[1, 1], [1, 1]]``) feeding a valid
  convolution; otherwise paddings must be ``[0, 0]`` (valid) or ``[1, 1]`` (same).

  Args:
      op (OperatorDescriptor): The conv2d record.
      ctx (LoweringContext): Descriptor and payload access.

  Returns:
      Lowering: One or two layers; the data input is pending.

  Raises:
      UnsupportedConfigurationError: For other groups or paddings.
  """
  paddings = _int_pair(ctx, op, "paddings")
  strides = tuple(s if s != 0 else 1 for s in _int_pair(ctx, op, "strides"))
  groups = int(ctx.block.attr(op, "groups"))

  source = ctx.block.input_arg(op, "Input")
  filter_name = ctx.block.input_arg(op, "Filter")
  output = ctx.block.output_arg(op, "Output")

  filter_shape = ctx.shape(filter_name)
  if len(filter_shape) != 4:
    raise UnsupportedConfigurationError(
      f"Filter must be rank 4, got shape {list(filter_shape)}", op_type=op.type, variable=filter_name
    )
  out_channels, _, kernel_h, kernel_w = filter_shape

  if groups == 1:
    layer_cls = Conv2d
  elif groups == out_channels:
    layer_cls = DepthwiseConv2d
  else:
    raise UnsupportedConfigurationError(
      f"Unsupported groups={groups} for {out_channels} filters", op_type=op.type, variable=filter_name
    )

  strided_same = _is_strided_same(paddings, strides, (kernel_h, kernel_w))
  padding = Padding.VALID if strided_same else _symmetric_padding(paddings, op)

  weights = ctx.load(filter_name)
  if layer_cls is DepthwiseConv2d:
    weights = np.ascontiguousarray(np.swapaxes(weights, 0, 1))

  lowering = Lowering()
  if strided_same:
    space = lowering.add(SpaceToBatch(ctx.shape(source), _STRIDED_SAME_BLOCK, _STRIDED_SAME_PADDINGS))
    conv = lowering.add(layer_cls(lowering.layers[space].output.shape, weights, None, padding, strides))
    lowering.link(space, conv)
    lowering.expect(space, source)
  else:
    conv = lowering.add(layer_cls(ctx.shape(source), weights, None, padding, strides))
    lowering.expect(conv, source)

  lowering.provide(output, conv)
  return lowering


def convert_elementwise_add(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  x = ctx.block.input_arg(op, "X")
  y = ctx.block.input_arg(op, "Y")
  output = ctx.block.output_arg(op, "Out")
  axis = int(ctx.block.attr_or(op, "axis", -1))

  lowering = Lowering()
  node = lowering.add(Add(ctx.shape(x), ctx.shape(y), axis=axis))
  lowering.expect(node, x, slot=0)
  lowering.expect(node, y, slot=1)
  lowering.provide(output, node)
  return lowering


def convert_batch_norm(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  """
  Lowers ``batch_norm``; the four statistics are weights, only ``X`` stays pending.
  """
  epsilon = float(ctx.block.attr(op, "epsilon"))
  offset = ctx.block.input_arg(op, "Bias")
  mean = ctx.block.input_arg(op, "Mean")
  scale = ctx.block.input_arg(op, "Scale")
  variance = ctx.block.input_arg(op, "Variance")
  x = ctx.block.input_arg(op, "X")
  output = ctx.block.output_arg(op, "Y")

  layer = BatchNormalization(
    ctx.shape(x),
    scale=ctx.load(scale),
    offset=ctx.load(offset),
    mean=ctx.load(mean),
    variance=ctx.load(variance),
    epsilon=epsilon,
  )
  lowering = Lowering()
  node = lowering.add(layer)
  lowering.expect(node, x)
  lowering.provide(output, node)
  return lowering


def convert_relu(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  x = ctx.block.input_arg(op, "X")
  output = ctx.block.output_arg(op, "Out")

  lowering = Lowering()
  node = lowering.add(Relu(ctx.shape(x)))
  lowering.expect(node, x)
  lowering.provide(output, node)
  return lowering


def convert_pool2d(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  """
  Lowers average ``pool2d`` into a valid-padding AveragePool2d.

  ``global_pooling`` widens the kernel to the whole spatial extent. Non-zero
  ``paddings`` and pooling types other than ``avg`` are rejected.
  """
  pooling_type = str(ctx.block.attr(op, "pooling_type"))
  if pooling_type != PoolingType.AVG.value:
    raise UnsupportedConfigurationError(f"Unsupported pooling_type '{pooling_type}'", op_type=op.type)

  x = ctx.block.input_arg(op, "X")
  output = ctx.block.output_arg(op, "Out")
  input_shape = ctx.shape(x)

  paddings = ctx.block.attr_or(op, "paddings", [0, 0])
  if any(int(p) != 0 for p in paddings):
    raise UnsupportedConfigurationError(f"Unsupported pooling paddings {list(paddings)}", op_type=op.type)

  if ctx.block.attr_or(op, "global_pooling", False):
    if len(input_shape) != 4 or min(input_shape[2:]) < 0:
      raise UnsupportedConfigurationError(
        f"Global pooling needs known spatial dims, got {list(input_shape)}", op_type=op.type, variable=x
      )
    kernel = (input_shape[2], input_shape[3])
    strides = (1, 1)
  else:
    kernel = _int_pair(ctx, op, "ksize")
    strides = _int_pair(ctx, op, "strides")

  lowering = Lowering()
  node = lowering.add(AveragePool2d(input_shape, Padding.VALID, kernel, strides))
  lowering.expect(node, x)
  lowering.provide(output, node)
  return lowering


def convert_reshape(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  shape = ctx.block.attr(op, "shape")
  x = ctx.block.input_arg(op, "X")
  output = ctx.block.output_arg(op, "Out")

  lowering = Lowering()
  node = lowering.add(Reshape(ctx.shape(x), [int(d) for d in shape]))
  lowering.expect(node, x)
  lowering.provide(output, node)
  return lowering


def convert_softmax(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  x = ctx.block.input_arg(op, "X")
  output = ctx.block.output_arg(op, "Out")
  axis = int(ctx.block.attr_or(op, "axis", -1))

  lowering = Lowering()
  node = lowering.add(Softmax(ctx.shape(x), axis=axis))
  lowering.expect(node, x)
  lowering.provide(output, node)
  return lowering


_HANDLERS: Dict[OpType, Handler] = {
  OpType.FEED: convert_feed,
  OpType.FETCH: convert_fetch,
  OpType.CONV2D: convert_conv2d,
  OpType.ELEMENTWISE_ADD: convert_elementwise_add,
  OpType.BATCH_NORM: convert_batch_norm,
  OpType.RELU: convert_relu,
  OpType.POOL2D: convert_pool2d,
  OpType.RESHAPE: convert_reshape,
  OpType.SOFTMAX: convert_softmax,
}


def supported_operators() -> List[str]:
  """Returns the operator tags that have a handler, in table order."""
  return [op_type.value for op_type in _HANDLERS]


def get_handler(op_type: str) -> Handler:
  """
  Looks up the handler for an operator tag.

  Args:
      op_type (str): Raw operator type.

  Returns:
      Handler: The conversion function.

  Raises:
      UnsupportedOperationError: If no handler exists for `op_type`.
  """
  key = OpType.parse(op_type)
  if key is None or key not in _HANDLERS:
    raise UnsupportedOperationError(f"Unsupported operator '{op_type}'", op_type=op_type)
  return _HANDLERS[key]


def lower_operator(op: OperatorDescriptor, ctx: LoweringContext) -> Lowering:
  """
  Converts one operator record, tagging any failure with the operator type.

  Args:
      op (OperatorDescriptor): The operator.
      ctx (LoweringContext): Descriptor and payload access.

  Returns:
      Lowering: The produced fragment.

  Raises:
      ConversionError: Any fatal failure, with `op_type` set.
  """
  handler = get_handler(op.type)
  try:
    return handler(op, ctx)
  except ConversionError as e:
    e.with_op(op.type)
    raise
