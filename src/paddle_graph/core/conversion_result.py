"""
Data structures representing the output of the conversion pipeline.

This module defines the `ConversionResult` Pydantic model, which carries either
the converted graph or the kind and context of the error that aborted the
conversion.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from paddle_graph.compiler.ir import Graph
from paddle_graph.enums import ErrorKind
from paddle_graph.errors import ConversionError


class ConversionResult(BaseModel):
  """
  Container for the results of a conversion job.
  """

  model_config = ConfigDict(arbitrary_types_allowed=True)

  graph: Optional[Graph] = Field(default=None, description="The converted graph; None on failure.")
  success: bool = Field(default=True, description="True if the conversion completed.")
  error_kind: Optional[ErrorKind] = Field(default=None, description="Category of the fatal error, if any.")
  errors: List[str] = Field(default_factory=list, description="Error messages encountered.")
  op_type: Optional[str] = Field(default=None, description="Operator being converted when the error happened.")
  variable: Optional[str] = Field(default=None, description="Variable the error concerns.")

  @property
  def has_errors(self) -> bool:
    """
    Check if the result contains any error messages.

    Returns:
        True if one or more errors are present.
    """
    return len(self.errors) > 0

  @property
  def message(self) -> Optional[str]:
    """The first error message, or None for a successful run."""
    return self.errors[0] if self.errors else None

  @classmethod
  def from_error(cls, error: ConversionError) -> "ConversionResult":
    """
    Builds a failed result from a conversion error.

    Args:
        error (ConversionError): The fatal error.

    Returns:
        ConversionResult: A result with no graph.
    """
    return cls(
      graph=None,
      success=False,
      error_kind=error.kind,
      errors=[str(error)],
      op_type=error.op_type,
      variable=error.variable,
    )
