"""
Graph Intermediate Representation (IR).

This module defines the port-level graph produced by the converter.

Nodes live in an arena (`Graph.nodes`) and are addressed by index. A port is
identified by a `PortRef` pair of (node index, port slot), so no node holds a
reference to another node:

- An `InputPort` owns at most one source `PortRef`, set exactly once.
- An `OutputPort` owns an append-only, ordered list of consumer `PortRef`s.

`Graph.inputs` and `Graph.outputs` list the indices of the boundary Input and
Output nodes, which form the external interface of the converted model.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple

from paddle_graph.enums import LayerKind
from paddle_graph.errors import PortConnectionError

if TYPE_CHECKING:
  from paddle_graph.compiler.layers import Layer

Shape = Tuple[int, ...]


@dataclass(frozen=True, order=True)
class PortRef:
  """
  Identity of a port inside a graph or a lowering fragment.
  """

  node: int
  """Index of the owning node."""

  slot: int = 0
  """Index of the port among the node's inputs (or outputs)."""

  def rebase(self, offset: int) -> "PortRef":
    """
    Shifts the node index, used when a fragment is appended to an arena.

    Args:
        offset (int): Number of nodes preceding the fragment.

    Returns:
        PortRef: The shifted reference.
    """
    return PortRef(self.node + offset, self.slot)


@dataclass
class InputPort:
  """
  A port accepting exactly one source.
  """

  name: str
  shape: Shape
  source: Optional[PortRef] = None

  @property
  def is_bound(self) -> bool:
    return self.source is not None

  def bind(self, source: PortRef) -> None:
    """
    Sets the source of this port.

    Args:
        source (PortRef): The producing output port.

    Raises:
        PortConnectionError: If the port already has a source.
    """
    if self.source is not None:
      raise PortConnectionError(f"Input port '{self.name}' is already bound to {self.source}")
    self.source = source


@dataclass
class OutputPort:
  """
  A port that may fan out to any number of consumers.
  """

  name: str
  shape: Shape
  consumers: List[PortRef] = field(default_factory=list)


class Graph:
  """
  Arena of layer nodes plus the ordered boundary node lists.

  Attributes:
      nodes (List[Layer]): All nodes, addressed by index.
      inputs (List[int]): Indices of boundary Input nodes, in resolution order.
      outputs (List[int]): Indices of boundary Output nodes, in resolution order.
  """

  def __init__(self) -> None:
    self.nodes: List["Layer"] = []
    self.inputs: List[int] = []
    self.outputs: List[int] = []

  def __len__(self) -> int:
    return len(self.nodes)

  def __repr__(self) -> str:
    return f"Graph(nodes={len(self.nodes)}, inputs={self.inputs}, outputs={self.outputs})"

  def add(self, layer: "Layer") -> int:
    """
    Appends a node to the arena.

    Args:
        layer (Layer): The node to add.

    Returns:
        int: The node index.
    """
    self.nodes.append(layer)
    return len(self.nodes) - 1

  def node(self, index: int) -> "Layer":
    return self.nodes[index]

  def input_port(self, ref: PortRef) -> InputPort:
    return self.nodes[ref.node].inputs[ref.slot]

  def output_port(self, ref: PortRef) -> OutputPort:
    return self.nodes[ref.node].outputs[ref.slot]

  def connect(self, source: PortRef, target: PortRef) -> None:
    """
    Wires an output port to an input port.

    Args:
        source (PortRef): The producing output port.
        target (PortRef): The consuming input port.

    Raises:
        PortConnectionError: If `target` is already bound.
    """
    self.input_port(target).bind(source)
    self.output_port(source).consumers.append(target)

  def replace(self, index: int, layer: "Layer") -> None:
    """
    Swaps the node at `index` for another one with compatible output ports.

    Consumers attached to the old node's outputs are carried over, so every
    `PortRef` pointing at `index` stays valid.

    Args:
        index (int): Node to replace.
        layer (Layer): Replacement. Must have no inputs and as many outputs.

    Raises:
        PortConnectionError: If the replacement's ports do not line up.
    """
    old = self.nodes[index]
    if layer.inputs or len(layer.outputs) != len(old.outputs):
      raise PortConnectionError(f"Cannot replace {old.kind.value} node {index} with {layer.kind.value}")
    for old_port, new_port in zip(old.outputs, layer.outputs):
      new_port.consumers.extend(old_port.consumers)
    self.nodes[index] = layer
    if index in self.inputs and layer.kind is not LayerKind.INPUT:
      self.inputs.remove(index)

  def input_layers(self) -> List["Layer"]:
    return [self.nodes[i] for i in self.inputs]

  def output_layers(self) -> List["Layer"]:
    return [self.nodes[i] for i in self.outputs]

  def edges(self) -> Iterator[Tuple[PortRef, PortRef]]:
    """
    Yields every connection as a (source, target) pair.

    Returns:
        Iterator[Tuple[PortRef, PortRef]]: Connections in node/slot order.
    """
    for idx, node in enumerate(self.nodes):
      for slot, port in enumerate(node.inputs):
        if port.source is not None:
          yield port.source, PortRef(idx, slot)

  def unbound_ports(self) -> List[PortRef]:
    """
    Lists input ports that have no source.

    Returns:
        List[PortRef]: Unbound input ports; empty for a fully resolved graph.
    """
    return [
      PortRef(idx, slot) for idx, node in enumerate(self.nodes) for slot, port in enumerate(node.inputs) if not port.is_bound
    ]

  def kinds(self) -> Dict[LayerKind, int]:
    """
    Counts nodes per layer kind.

    Returns:
        Dict[LayerKind, int]: Kind -> number of nodes.
    """
    counts: Dict[LayerKind, int] = {}
    for node in self.nodes:
      counts[node.kind] = counts.get(node.kind, 0) + 1
    return counts

  def summary(self) -> List[Tuple[str, Tuple[Shape, ...], Tuple[Shape, ...]]]:
    """
    Structural fingerprint: kind, input shapes and output shapes per node.

    Returns:
        List[Tuple]: One entry per node in arena order.
    """
    return [
      (node.kind.value, tuple(p.shape for p in node.inputs), tuple(p.shape for p in node.outputs)) for node in self.nodes
    ]

  def topological_order(self) -> List[int]:
    """
    Sorts node indices by dependency order.

    Ensures that for every connection u -> v, u appears before v. Nodes left
    over by a cycle are appended in arena order.

    Returns:
        List[int]: Node indices in execution order.
    """
    order = self._kahn_order()
    if len(order) < len(self.nodes):
      seen = set(order)
      order.extend(i for i in range(len(self.nodes)) if i not in seen)
    return order

  def is_acyclic(self) -> bool:
    """Returns True if every node can be ordered by dependency."""
    return len(self._kahn_order()) == len(self.nodes)

  def _kahn_order(self) -> List[int]:
    in_degree = [0] * len(self.nodes)
    successors: Dict[int, List[int]] = {}
    for source, target in self.edges():
      successors.setdefault(source.node, []).append(target.node)
      in_degree[target.node] += 1

    queue = deque(i for i, degree in enumerate(in_degree) if degree == 0)
    order: List[int] = []
    while queue:
      u = queue.popleft()
      order.append(u)
      for v in successors.get(u, []):
        in_degree[v] -= 1
        if in_degree[v] == 0:
          queue.append(v)
    return order
