"""
Compiler Package.

Defines the port-level graph IR, the layer library, the per-operator
handlers and the resolver that wires a block's operators into a graph.
"""

from paddle_graph.compiler.handlers import Lowering, LoweringContext, get_handler, lower_operator, supported_operators
from paddle_graph.compiler.ir import Graph, InputPort, OutputPort, PortRef
from paddle_graph.compiler.resolver import GraphResolver, resolve_block

__all__ = [
  "Graph",
  "GraphResolver",
  "InputPort",
  "Lowering",
  "LoweringContext",
  "OutputPort",
  "PortRef",
  "get_handler",
  "lower_operator",
  "resolve_block",
  "supported_operators",
]
