"""
Graph Resolver.

Turns the flat operator list of one block into a fully wired `Graph`.

Resolution runs in a single pass over the operators followed by closing passes:

1.  **Lowering Pass**: every operator is dispatched to its handler in
    descriptor order. The resulting layers are appended to the node arena and
    their pending and produced bindings are recorded in two tables.
2.  **Binding Pass**: each pending input port is connected to the producer of
    its variable. Variables nobody produces become a shared Constant (when a
    payload exists or the variable is persistable) or a new boundary Input.
3.  **Feed Replacement**: a feed Input whose variable also has a payload, and
    no other producer, is swapped for a Constant.
4.  **Output Pass**: every output port left without consumers gets a boundary
    Output node.

Producers are versioned per variable. A consumer binds to the latest producer
registered by an earlier operator, or, for forward references, to the first
one registered by a later operator. In-place operators (``Out == X``) therefore
read the previous value of their variable instead of their own output.
"""

import logging
from typing import Dict, List, Optional, Tuple

from paddle_graph.compiler.handlers import Lowering, LoweringContext, lower_operator
from paddle_graph.compiler.ir import Graph, PortRef, Shape
from paddle_graph.compiler.layers import UNKNOWN, Constant, InputLayer, OutputLayer
from paddle_graph.enums import LayerKind
from paddle_graph.errors import PortConnectionError
from paddle_graph.importers.descriptors import BlockAccessor
from paddle_graph.importers.tensor_reader import TensorReader
from paddle_graph.utils.console import log_warning

logger = logging.getLogger(__name__)


class GraphResolver:
  """
  Builds a `Graph` from one block's operators.

  A resolver owns its binding tables; use one instance per conversion.

  Attributes:
      context (LoweringContext): Descriptor and payload access shared by handlers.
      graph (Graph): The graph under construction.
      pending (Dict[PortRef, Tuple[str, int]]): Unbound input port -> (variable, operator index).
      produced (Dict[str, List[Tuple[int, PortRef]]]): Variable -> (operator index, output port) history.
  """

  def __init__(self, block: BlockAccessor, tensors: TensorReader, default_dtype: str = "float32") -> None:
    self.context = LoweringContext(block=block, tensors=tensors, default_dtype=default_dtype)
    self.graph = Graph()
    self.pending: Dict[PortRef, Tuple[str, int]] = {}
    self.produced: Dict[str, List[Tuple[int, PortRef]]] = {}
    self._provisional: Dict[str, int] = {}
    self._synthesized: Dict[str, PortRef] = {}
    self._resolved = False

  def resolve(self) -> Graph:
    """
    Runs every pass and returns the finished graph.

    Returns:
        Graph: The wired graph. Calling `resolve` again returns the same object.

    Raises:
        ConversionError: On the first unsupported operator, invalid attribute
            combination, malformed payload or wiring failure.
    """
    if self._resolved:
      return self.graph

    for index, op in enumerate(self.context.block.ops):
      lowering = lower_operator(op, self.context)
      self._append(index, lowering)
      for layer in lowering.layers:
        logger.debug("Lowered #%d %s into %r %s", index, op.type, layer, layer.params())

    self._bind_pending()
    self._replace_fed_constants()
    self._attach_outputs()

    self._resolved = True
    return self.graph

  def _append(self, op_index: int, lowering: Lowering) -> None:
    offset = len(self.graph.nodes)
    for layer in lowering.layers:
      self.graph.add(layer)

    for source, target in lowering.links:
      self.graph.connect(source.rebase(offset), target.rebase(offset))

    for port, variable in lowering.pending:
      self.pending[port.rebase(offset)] = (variable, op_index)

    for variable, port in lowering.produced:
      self.produced.setdefault(variable, []).append((op_index, port.rebase(offset)))

    self.graph.inputs.extend(node + offset for node in lowering.boundary_inputs)
    self.graph.outputs.extend(node + offset for node in lowering.boundary_outputs)
    for variable, node in lowering.provisional.items():
      self._provisional[variable] = node + offset

  def find_producer(self, variable: str, op_index: int) -> Optional[PortRef]:
    """
    Selects the producer a consumer at `op_index` reads.

    Args:
        variable (str): Variable name.
        op_index (int): Index of the consuming operator.

    Returns:
        Optional[PortRef]: The output port, or None if no operator produces `variable`.
    """
    history = self.produced.get(variable, [])
    earlier = [port for index, port in history if index < op_index]
    if earlier:
      return earlier[-1]
    later = [port for index, port in history if index > op_index]
    return later[0] if later else None

  def _bind_pending(self) -> None:
    for target, (variable, op_index) in self.pending.items():
      source = self.find_producer(variable, op_index)
      if source is None:
        source = self._synthesize_source(variable)
      if self.graph.node(target.node).kind is LayerKind.OUTPUT:
        _check_boundary_shape(variable, self.graph.output_port(source).shape, self.graph.input_port(target).shape)
      self.graph.connect(source, target)

  def _synthesize_source(self, variable: str) -> PortRef:
    if variable in self._synthesized:
      return self._synthesized[variable]

    declaration = self.context.block.var(variable)
    has_payload = self.context.tensors.exists(variable)
    if declaration.persistable or has_payload:
      if not has_payload:
        log_warning(f"No payload for persistable [var]{variable}[/var], using zeros")
      node = self.graph.add(Constant(self.context.load_or_default(variable)))
      logger.debug("Bound %s to a constant", variable)
    else:
      node = self.graph.add(InputLayer(declaration.shape))
      self.graph.inputs.append(node)
      logger.debug("Bound %s to a new graph input", variable)

    ref = PortRef(node, 0)
    self._synthesized[variable] = ref
    return ref

  def _replace_fed_constants(self) -> None:
    for variable, node in self._provisional.items():
      if len(self.produced.get(variable, [])) != 1 or not self.context.tensors.exists(variable):
        continue
      self.graph.replace(node, Constant(self.context.load(variable)))
      logger.debug("Replaced feed %s with its stored payload", variable)

  def _attach_outputs(self) -> None:
    registered = sorted(
      ((op_index, variable, source) for variable, history in self.produced.items() for op_index, source in history),
      key=lambda entry: entry[0],
    )
    for _, variable, source in registered:
      port = self.graph.output_port(source)
      if port.consumers:
        continue
      declared = self.context.shape(variable) if self.context.block.has_var(variable) else port.shape
      _check_boundary_shape(variable, port.shape, declared)
      node = self.graph.add(OutputLayer(declared))
      self.graph.outputs.append(node)
      self.graph.connect(source, PortRef(node, 0))
      logger.debug("Exposed %s as a graph output", variable)


def resolve_block(block: BlockAccessor, tensors: TensorReader, default_dtype: str = "float32") -> Graph:
  """
  Convenience wrapper running a fresh `GraphResolver`.

  Args:
      block (BlockAccessor): Block to convert.
      tensors (TensorReader): Payload reader for the model directory.
      default_dtype (str): Element type for variables declaring none.

  Returns:
      Graph: The resolved graph.
  """
  return GraphResolver(block, tensors, default_dtype=default_dtype).resolve()


def _check_boundary_shape(variable: str, inferred: Shape, declared: Shape) -> None:
  """
  Ensures the shape reaching a boundary Output agrees with the declaration.

  A ``-1`` on either side matches any extent.

  Raises:
      PortConnectionError: If rank or a known dimension differs.
  """
  compatible = len(inferred) == len(declared) and all(
    a == b or UNKNOWN in (a, b) for a, b in zip(inferred, declared)
  )
  if not compatible:
    raise PortConnectionError(
      f"Inferred shape {list(inferred)} does not match declared shape {list(declared)}", variable=variable
    )
