"""
paddle-graph Package.

Converts one block of a Paddle inference program into a port-level layer graph.

Usage
-----

Simple Conversion
^^^^^^^^^^^^^^^^^

.. code-block:: python

    import paddle_graph

    graph = paddle_graph.convert("path/to/model_dir")
    print(graph.input_layers(), graph.output_layers())

Engine Usage
^^^^^^^^^^^^

.. code-block:: python

    from paddle_graph import ConversionConfig, ConversionEngine

    engine = ConversionEngine(ConversionConfig(model_dir="path/to/model_dir"))
    res = engine.run()

    if res.success:
        print(res.graph.kinds())
    else:
        print(f"{res.error_kind}: {res.errors}")
"""

from pathlib import Path
from typing import Optional, Union

from paddle_graph.compiler.ir import Graph
from paddle_graph.config import ConversionConfig
from paddle_graph.core.conversion_result import ConversionResult
from paddle_graph.core.engine import ConversionEngine
from paddle_graph.enums import ErrorKind, LayerKind, OpType
from paddle_graph.errors import ConversionError

__version__ = "0.1.0"

__all__ = [
  "ConversionConfig",
  "ConversionEngine",
  "ConversionError",
  "ConversionResult",
  "ErrorKind",
  "Graph",
  "LayerKind",
  "OpType",
  "convert",
  "__version__",
]


def convert(
  model_dir: Union[str, Path],
  block_index: int = 0,
  model_filename: Optional[str] = None,
  default_dtype: Optional[str] = None,
) -> Graph:
  """
  Converts one block of a model directory into a graph.

  Args:
      model_dir (Union[str, Path]): Directory holding the program descriptor and payload files.
      block_index (int): Block to convert. Defaults to the main block.
      model_filename (Optional[str]): Descriptor file name override.
      default_dtype (Optional[str]): Element type for variables declaring none.

  Returns:
      Graph: The resolved graph.

  Raises:
      ConversionError: If the block cannot be converted.
  """
  config = ConversionConfig.load(
    Path(model_dir),
    model_filename=model_filename,
    block_index=block_index,
    default_dtype=default_dtype,
  )
  engine = ConversionEngine(config)
  block = engine.reader.read_block(config.block_index)
  return engine.convert_block(block)
