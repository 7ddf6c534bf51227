"""
Enumerations for paddle-graph.

This module defines the closed vocabularies shared across the converter:
operator tags understood by the handler table, layer kinds produced in the
graph, convolution padding modes and the error taxonomy.
"""

from enum import Enum
from typing import Optional


class OpType(str, Enum):
  """
  Operator tags the converter knows how to lower.

  Anything outside this set is rejected with an unsupported-operation error.
  """

  FEED = "feed"
  FETCH = "fetch"
  CONV2D = "conv2d"
  ELEMENTWISE_ADD = "elementwise_add"
  BATCH_NORM = "batch_norm"
  RELU = "relu"
  POOL2D = "pool2d"
  RESHAPE = "reshape"
  SOFTMAX = "softmax"

  @classmethod
  def parse(cls, tag: str) -> Optional["OpType"]:
    """
    Looks up an operator tag without raising.

    Args:
        tag (str): Raw operator type string from the descriptor.

    Returns:
        Optional[OpType]: The matching member, or None if unknown.
    """
    try:
      return cls(tag)
    except ValueError:
      return None


class LayerKind(str, Enum):
  """Concrete layer kinds that can appear as graph nodes."""

  INPUT = "Input"
  OUTPUT = "Output"
  CONSTANT = "Constant"
  CONV2D = "Conv2d"
  DEPTHWISE_CONV2D = "DepthwiseConv2d"
  ADD = "Add"
  BATCH_NORMALIZATION = "BatchNormalization"
  RELU = "Relu"
  AVERAGE_POOL2D = "AveragePool2d"
  RESHAPE = "Reshape"
  SOFTMAX = "Softmax"
  SPACE_TO_BATCH = "SpaceToBatch"


class Padding(str, Enum):
  """Spatial padding modes for windowed layers."""

  VALID = "valid"
  SAME = "same"


class PoolingType(str, Enum):
  """Values of the ``pooling_type`` attribute on ``pool2d``."""

  AVG = "avg"
  MAX = "max"


class ErrorKind(str, Enum):
  """
  Categorization of fatal conversion failures.

  Callers of the engine branch on this value instead of on exception classes.
  """

  UNSUPPORTED_OPERATION = "unsupported_operation"
  UNSUPPORTED_CONFIGURATION = "unsupported_configuration"
  FORMAT = "format"
  DESCRIPTOR = "descriptor"
  GRAPH = "graph"
