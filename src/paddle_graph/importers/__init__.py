"""
Importers Package.

Readers for the on-disk model format: the program descriptor and the
per-variable tensor payload files.
"""

from paddle_graph.importers.descriptors import (
  BlockAccessor,
  BlockDescriptor,
  OperatorDescriptor,
  ProgramDescriptor,
  VariableDescriptor,
)
from paddle_graph.importers.program_reader import ProgramReader
from paddle_graph.importers.tensor_reader import TensorReader, decode_tensor, encode_tensor

__all__ = [
  "BlockAccessor",
  "BlockDescriptor",
  "OperatorDescriptor",
  "ProgramDescriptor",
  "VariableDescriptor",
  "ProgramReader",
  "TensorReader",
  "decode_tensor",
  "encode_tensor",
]
