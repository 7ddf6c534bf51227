"""
Conversion Engine.

This module provides the `ConversionEngine`, the driver that turns a model
directory into a `Graph`:

1.  **Load**: read the program descriptor and select a block.
2.  **Resolve**: lower every operator and wire the graph (`GraphResolver`).
3.  **Report**: wrap the graph, or the error that aborted the run, into a
    `ConversionResult`.

`run` never raises for conversion failures; `convert_block` and `convert` do.
"""

from pathlib import Path
from typing import Optional, Union

from rich.markup import escape

from paddle_graph.compiler.ir import Graph
from paddle_graph.compiler.resolver import GraphResolver
from paddle_graph.config import ConversionConfig
from paddle_graph.core.conversion_result import ConversionResult
from paddle_graph.errors import ConversionError
from paddle_graph.importers.descriptors import BlockAccessor, BlockDescriptor, ProgramDescriptor
from paddle_graph.importers.program_reader import ProgramReader
from paddle_graph.importers.tensor_reader import TensorReader
from paddle_graph.utils.console import log_error, log_info, log_success, set_log_level


class ConversionEngine:
  """
  Converts blocks of one model directory into graphs.

  Attributes:
      config (ConversionConfig): Settings for this engine.
      reader (ProgramReader): Descriptor reader for the model directory.
      tensors (TensorReader): Payload reader for the model directory.
  """

  def __init__(self, config: Optional[ConversionConfig] = None, model_dir: Optional[Union[str, Path]] = None) -> None:
    """
    Initializes the Engine.

    Args:
        config (ConversionConfig, optional): Full configuration. Built with
            `ConversionConfig.load` from `model_dir` when omitted.
        model_dir (Union[str, Path], optional): Model directory, used only when
            `config` is None.

    Raises:
        ValueError: If neither `config` nor `model_dir` is given.
    """
    if config is None:
      if model_dir is None:
        raise ValueError("ConversionEngine needs a config or a model_dir")
      config = ConversionConfig.load(Path(model_dir))

    self.config = config
    self.reader = ProgramReader(config.model_dir, config.model_filename)
    self.tensors = TensorReader(config.model_dir, expected_version=config.tensor_version)

  def load_program(self) -> ProgramDescriptor:
    return self.reader.read()

  def convert_block(self, block: BlockDescriptor) -> Graph:
    """
    Resolves one block into a graph.

    Args:
        block (BlockDescriptor): The block to convert.

    Returns:
        Graph: The resolved graph.

    Raises:
        ConversionError: If the block cannot be converted.
    """
    resolver = GraphResolver(BlockAccessor(block), self.tensors, default_dtype=self.config.default_dtype)
    return resolver.resolve()

  def run(self, block_index: Optional[int] = None) -> ConversionResult:
    """
    Executes the full conversion pipeline.

    Args:
        block_index (int, optional): Block to convert; defaults to the configured one.

    Returns:
        ConversionResult: The graph, or the kind and context of the failure.
    """
    set_log_level(self.config.log_level)
    index = self.config.block_index if block_index is None else block_index
    log_info(f"Converting block {index} of [var]{self.config.model_dir}[/var]")

    try:
      block = self.reader.read_block(index)
      graph = self.convert_block(block)
    except ConversionError as e:
      log_error(f"Conversion failed ({e.kind.value}): {escape(str(e))}")
      return ConversionResult.from_error(e)

    log_success(f"Converted {len(block.ops)} operators into {len(graph)} nodes")
    return ConversionResult(graph=graph, success=True)
