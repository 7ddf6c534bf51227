"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- A model-directory builder writing `__model__.json` plus encoded payload files.
- Console isolation so captured log output never leaks between tests.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

# Add src to path so we can import 'paddle_graph' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from paddle_graph.compiler.handlers import LoweringContext
from paddle_graph.config import DEFAULT_MODEL_FILENAME
from paddle_graph.importers.descriptors import (
  BlockAccessor,
  BlockDescriptor,
  OperatorDescriptor,
  ProgramDescriptor,
  VariableDescriptor,
)
from paddle_graph.importers.tensor_reader import TensorReader, encode_tensor
from paddle_graph.utils.console import reset_console


class ModelBuilder:
  """
  Assembles a single-block program in a temporary model directory.

  Variables given a `value` get a payload file encoded with the zero header
  and default to persistable.
  """

  def __init__(self, root: Path):
    self.root = root
    self.vars: List[VariableDescriptor] = []
    self.ops: List[OperatorDescriptor] = []

  def var(
    self,
    name: str,
    shape: Sequence[int],
    dtype: str = "float32",
    persistable: Optional[bool] = None,
    value: Optional[np.ndarray] = None,
  ) -> "ModelBuilder":
    if value is not None:
      self.write_payload(name, value)
    if persistable is None:
      persistable = value is not None
    self.vars.append(VariableDescriptor(name=name, shape=tuple(shape), dtype=dtype, persistable=persistable))
    return self

  def write_payload(self, name: str, value: np.ndarray) -> Path:
    path = self.root / name
    path.write_bytes(encode_tensor(value))
    return path

  def op(
    self,
    op_type: str,
    inputs: Optional[Dict[str, List[str]]] = None,
    outputs: Optional[Dict[str, List[str]]] = None,
    **attrs,
  ) -> "ModelBuilder":
    self.ops.append(OperatorDescriptor(type=op_type, inputs=inputs or {}, outputs=outputs or {}, attrs=attrs))
    return self

  def block(self) -> BlockDescriptor:
    return BlockDescriptor(vars=self.vars, ops=self.ops)

  def accessor(self) -> BlockAccessor:
    return BlockAccessor(self.block())

  def tensors(self) -> TensorReader:
    return TensorReader(self.root)

  def context(self) -> LoweringContext:
    return LoweringContext(block=self.accessor(), tensors=self.tensors())

  def write(self, filename: str = DEFAULT_MODEL_FILENAME) -> Path:
    program = ProgramDescriptor(blocks=[self.block()])
    path = self.root / filename
    path.write_text(program.model_dump_json(indent=2), encoding="utf-8")
    return path


@pytest.fixture
def model_builder(tmp_path):
  """Returns a `ModelBuilder` rooted in a fresh model directory."""
  model_dir = tmp_path / "model"
  model_dir.mkdir()
  return ModelBuilder(model_dir)


@pytest.fixture
def small_network(model_builder):
  """
  feed -> conv2d -> batch_norm -> relu (in place) -> global pool2d -> reshape -> softmax -> fetch
  """
  b = model_builder
  b.var("x", [1, 3, 8, 8])
  b.var("conv_w", [4, 3, 3, 3], value=np.ones((4, 3, 3, 3), dtype=np.float32))
  b.var("conv_out", [1, 4, 8, 8])
  for stat, fill in (("bn_scale", 1.0), ("bn_bias", 0.0), ("bn_mean", 0.0), ("bn_var", 1.0)):
    b.var(stat, [4], value=np.full((4,), fill, dtype=np.float32))
  b.var("bn_out", [1, 4, 8, 8])
  b.var("pool_out", [1, 4, 1, 1])
  b.var("flat", [1, 4])
  b.var("prob", [1, 4])

  b.op("feed", outputs={"Out": ["x"]}, col=0)
  b.op(
    "conv2d",
    inputs={"Input": ["x"], "Filter": ["conv_w"]},
    outputs={"Output": ["conv_out"]},
    paddings=[1, 1],
    strides=[1, 1],
    groups=1,
  )
  b.op(
    "batch_norm",
    inputs={"X": ["conv_out"], "Scale": ["bn_scale"], "Bias": ["bn_bias"], "Mean": ["bn_mean"], "Variance": ["bn_var"]},
    outputs={"Y": ["bn_out"]},
    epsilon=1e-5,
  )
  b.op("relu", inputs={"X": ["bn_out"]}, outputs={"Out": ["bn_out"]})
  b.op("pool2d", inputs={"X": ["bn_out"]}, outputs={"Out": ["pool_out"]}, pooling_type="avg", global_pooling=True)
  b.op("reshape", inputs={"X": ["pool_out"]}, outputs={"Out": ["flat"]}, shape=[0, -1])
  b.op("softmax", inputs={"X": ["flat"]}, outputs={"Out": ["prob"]}, axis=-1)
  b.op("fetch", inputs={"X": ["prob"]}, col=0)
  return b


@pytest.fixture(autouse=True)
def isolate_console():
  """Ensures the console and log level are reset around every test."""
  reset_console()
  yield
  reset_console()
