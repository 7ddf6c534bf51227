"""
Program Descriptor Records and Accessors.

This module defines the Pydantic schema of an already-parsed Paddle program:
variables, operators, blocks and the program itself. All records are frozen;
the converter only reads them.

`BlockAccessor` provides the lookups every operator handler relies on:
variable-by-name, shape-of-variable, attribute-by-name and role-to-argument.
"""

from typing import Dict, List, Mapping, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from paddle_graph.errors import MissingArgumentError, MissingAttributeError, UnknownVariableError

AttrValue = Union[bool, int, float, str, List[int], List[float], List[str]]
"""Typed attribute value. Pydantic tries the members left to right."""

_MISSING = object()


class VariableDescriptor(BaseModel):
  """
  A named tensor declared in a block.
  """

  model_config = ConfigDict(frozen=True)

  name: str = Field(..., description="Unique variable name within the block.")
  shape: Tuple[int, ...] = Field(default_factory=tuple, description="Declared dimensions, row-major.")
  dtype: str = Field("float32", description="Element type of the tensor payload.")
  persistable: bool = Field(False, description="True for weights/constants stored as side-car payload files.")


class OperatorDescriptor(BaseModel):
  """
  One operator record: a type tag, role-keyed arguments and attributes.
  """

  model_config = ConfigDict(frozen=True)

  type: str = Field(..., description="Operator tag (e.g. 'conv2d').")
  inputs: Dict[str, List[str]] = Field(default_factory=dict, description="Input role -> variable names.")
  outputs: Dict[str, List[str]] = Field(default_factory=dict, description="Output role -> variable names.")
  attrs: Dict[str, AttrValue] = Field(default_factory=dict, description="Attribute name -> typed value.")


class BlockDescriptor(BaseModel):
  """
  A scope holding variable declarations and operators in execution order.
  """

  model_config = ConfigDict(frozen=True)

  idx: int = 0
  parent_idx: int = -1
  vars: List[VariableDescriptor] = Field(default_factory=list)
  ops: List[OperatorDescriptor] = Field(default_factory=list)


class ProgramDescriptor(BaseModel):
  """
  A whole serialized program: an ordered list of blocks, block 0 being the main one.
  """

  model_config = ConfigDict(frozen=True)

  blocks: List[BlockDescriptor] = Field(default_factory=list)
  version: int = 0


class BlockAccessor:
  """
  Read-only lookups over a `BlockDescriptor`.

  The variable index is built once in the constructor and never mutated
  afterwards, so one accessor can be shared between conversions.

  Attributes:
      block (BlockDescriptor): The wrapped block.
  """

  def __init__(self, block: BlockDescriptor) -> None:
    self.block = block
    self._vars: Mapping[str, VariableDescriptor] = {v.name: v for v in block.vars}

  @property
  def ops(self) -> List[OperatorDescriptor]:
    """Operators of the block in descriptor order."""
    return self.block.ops

  def has_var(self, name: str) -> bool:
    """Returns True if the block declares a variable named `name`."""
    return name in self._vars

  def var(self, name: str) -> VariableDescriptor:
    """
    Looks up a variable declaration.

    Args:
        name (str): Variable name.

    Returns:
        VariableDescriptor: The declaration.

    Raises:
        UnknownVariableError: If the block does not declare `name`.
    """
    try:
      return self._vars[name]
    except KeyError:
      raise UnknownVariableError(f"Variable '{name}' is not declared in block {self.block.idx}", variable=name)

  def var_shape(self, name: str) -> Tuple[int, ...]:
    """
    Returns the declared shape of a variable.

    Args:
        name (str): Variable name.

    Returns:
        Tuple[int, ...]: Declared dimensions.
    """
    return tuple(self.var(name).shape)

  def attr(self, op: OperatorDescriptor, name: str) -> AttrValue:
    """
    Reads a required operator attribute.

    Args:
        op (OperatorDescriptor): The operator.
        name (str): Attribute name.

    Returns:
        AttrValue: The attribute value.

    Raises:
        MissingAttributeError: If the operator does not define `name`.
    """
    value = op.attrs.get(name, _MISSING)
    if value is _MISSING:
      raise MissingAttributeError(f"Operator lacks attribute '{name}'", op_type=op.type)
    return value

  def attr_or(self, op: OperatorDescriptor, name: str, default: AttrValue) -> AttrValue:
    """Reads an optional attribute, returning `default` when absent."""
    return op.attrs.get(name, default)

  def input_arg(self, op: OperatorDescriptor, role: str) -> str:
    """
    Returns the first variable bound to an input role.

    Args:
        op (OperatorDescriptor): The operator.
        role (str): Input role name (e.g. 'X', 'Filter').

    Returns:
        str: The variable name.

    Raises:
        MissingArgumentError: If the role is absent or empty.
    """
    return _first_arg(op, op.inputs, role, "input")

  def output_arg(self, op: OperatorDescriptor, role: str) -> str:
    """
    Returns the first variable bound to an output role.

    Args:
        op (OperatorDescriptor): The operator.
        role (str): Output role name (e.g. 'Out').

    Returns:
        str: The variable name.

    Raises:
        MissingArgumentError: If the role is absent or empty.
    """
    return _first_arg(op, op.outputs, role, "output")


def _first_arg(op: OperatorDescriptor, args: Dict[str, List[str]], role: str, direction: str) -> str:
  names = args.get(role)
  if not names:
    raise MissingArgumentError(f"Operator lacks {direction} role '{role}'", op_type=op.type)
  return names[0]
