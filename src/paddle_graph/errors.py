"""
Conversion Error Hierarchy.

Every fatal condition raised while turning a program block into a graph derives
from `ConversionError`. Each error carries its `ErrorKind` together with the
operator type and variable name it concerns, so callers can report the exact
failure without parsing messages.

A missing tensor payload is not an error: the resolver substitutes a
zero-filled constant.
"""

from typing import Any, Dict, Optional

from paddle_graph.enums import ErrorKind


class ConversionError(ValueError):
  """
  Base class for all fatal conversion failures.

  Attributes:
      message (str): Human-readable description.
      kind (ErrorKind): Category of the failure.
      op_type (Optional[str]): Operator tag being converted when the error happened.
      variable (Optional[str]): Variable name the error concerns, if any.
  """

  kind: ErrorKind = ErrorKind.GRAPH

  def __init__(
    self,
    message: str,
    *,
    op_type: Optional[str] = None,
    variable: Optional[str] = None,
  ) -> None:
    """
    Initializes the error.

    Args:
        message (str): Description of the failure.
        op_type (Optional[str]): Offending operator tag.
        variable (Optional[str]): Offending variable name.
    """
    super().__init__(message)
    self.message = message
    self.op_type = op_type
    self.variable = variable

  @property
  def context(self) -> Dict[str, Any]:
    """
    Structured context for logging and result reporting.

    Returns:
        Dict[str, Any]: Kind, operator and variable of the failure.
    """
    return {"kind": self.kind.value, "op_type": self.op_type, "variable": self.variable}

  def with_op(self, op_type: str) -> "ConversionError":
    """
    Attaches an operator tag if the error does not carry one yet.

    Args:
        op_type (str): Operator being converted.

    Returns:
        ConversionError: This instance, for re-raising.
    """
    if self.op_type is None:
      self.op_type = op_type
    return self

  def __str__(self) -> str:
    parts = [self.message]
    if self.op_type:
      parts.append(f"op={self.op_type}")
    if self.variable:
      parts.append(f"var={self.variable}")
    return " | ".join(parts)

  def __repr__(self) -> str:
    return f"{self.__class__.__name__}({self.message!r}, op_type={self.op_type!r}, variable={self.variable!r})"


class UnsupportedOperationError(ConversionError):
  """Raised for an operator tag outside the supported set."""

  kind = ErrorKind.UNSUPPORTED_OPERATION


class UnsupportedConfigurationError(ConversionError):
  """Raised when a supported operator uses an attribute combination that cannot be lowered."""

  kind = ErrorKind.UNSUPPORTED_CONFIGURATION


class TensorFormatError(ConversionError):
  """Raised when a tensor payload does not follow the expected binary layout."""

  kind = ErrorKind.FORMAT


class TruncatedPayloadError(TensorFormatError):
  """The payload ended before a header field or skipped region was complete."""


class ShapeMismatchError(TensorFormatError):
  """The payload body does not hold exactly the declared number of elements."""


class DescriptorError(ConversionError):
  """Raised when the program descriptor is missing data a handler needs."""

  kind = ErrorKind.DESCRIPTOR


class UnknownVariableError(DescriptorError):
  """A variable name is referenced but never declared in the block."""


class MissingAttributeError(DescriptorError):
  """An operator lacks a required attribute."""


class MissingArgumentError(DescriptorError):
  """An operator lacks a required input or output role."""


class ProgramNotFoundError(DescriptorError):
  """The model directory holds no program descriptor."""


class DescriptorFormatError(DescriptorError):
  """The program descriptor exists but cannot be parsed."""


class PortConnectionError(ConversionError):
  """Raised for invalid wiring, such as binding an input port twice, or impossible shapes."""

  kind = ErrorKind.GRAPH
