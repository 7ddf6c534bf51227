"""
Program Descriptor Reader.

Reads the program descriptor of a model directory. The descriptor is stored as
a JSON document mirroring `ProgramDescriptor` (blocks of variables and
operators), next to one payload file per persistable variable.
"""

from pathlib import Path
from typing import Union

from pydantic import ValidationError

from paddle_graph.config import DEFAULT_MODEL_FILENAME
from paddle_graph.errors import DescriptorFormatError, ProgramNotFoundError
from paddle_graph.importers.descriptors import BlockDescriptor, ProgramDescriptor
from paddle_graph.utils.console import log_info


class ProgramReader:
  """
  Loads and validates a `ProgramDescriptor` from a model directory.

  Attributes:
      model_dir (Path): The model directory.
      model_filename (str): Descriptor file name inside `model_dir`.
  """

  def __init__(self, model_dir: Union[str, Path], model_filename: str = DEFAULT_MODEL_FILENAME) -> None:
    self.model_dir = Path(model_dir)
    self.model_filename = model_filename

  @property
  def path(self) -> Path:
    return self.model_dir / self.model_filename

  def read(self) -> ProgramDescriptor:
    """
    Parses the descriptor file.

    Returns:
        ProgramDescriptor: The validated program.

    Raises:
        ProgramNotFoundError: If the descriptor file does not exist.
        DescriptorFormatError: If the file is not a valid program document.
    """
    if not self.path.is_file():
      raise ProgramNotFoundError(f"Program descriptor not found: {self.path}")

    log_info(f"Reading program descriptor [var]{self.path.name}[/var]...")
    try:
      return ProgramDescriptor.model_validate_json(self.path.read_bytes())
    except ValidationError as e:
      raise DescriptorFormatError(f"Invalid program descriptor {self.path}: {e}") from e

  def read_block(self, index: int = 0) -> BlockDescriptor:
    """
    Parses the descriptor and returns one block.

    Args:
        index (int): Block index, 0 being the main block.

    Returns:
        BlockDescriptor: The requested block.

    Raises:
        DescriptorFormatError: If the program has no block at `index`.
    """
    program = self.read()
    if not 0 <= index < len(program.blocks):
      raise DescriptorFormatError(f"Program has {len(program.blocks)} block(s); block {index} requested")
    return program.blocks[index]
