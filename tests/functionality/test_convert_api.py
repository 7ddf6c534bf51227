"""
Tests for the top-level `paddle_graph.convert` wrapper.
"""

import pytest

import paddle_graph
from paddle_graph.enums import ErrorKind, LayerKind
from paddle_graph.errors import ConversionError, ProgramNotFoundError


def test_convert_returns_graph(small_network):
  small_network.write()
  graph = paddle_graph.convert(small_network.root)

  assert graph.unbound_ports() == []
  assert [layer.kind for layer in graph.input_layers()] == [LayerKind.INPUT]
  assert [layer.kind for layer in graph.output_layers()] == [LayerKind.OUTPUT]


def test_convert_custom_filename(small_network):
  small_network.write("inference.json")
  graph = paddle_graph.convert(small_network.root, model_filename="inference.json")
  assert len(graph) == 8


def test_convert_raises_on_failure(tmp_path):
  with pytest.raises(ProgramNotFoundError):
    paddle_graph.convert(tmp_path)


def test_convert_unsupported_is_value_error(small_network):
  small_network.op("lstm", inputs={"Input": ["prob"]}, outputs={"Hidden": ["h"]})
  small_network.write()

  with pytest.raises(ValueError) as excinfo:
    paddle_graph.convert(small_network.root)
  assert isinstance(excinfo.value, ConversionError)
  assert excinfo.value.kind is ErrorKind.UNSUPPORTED_OPERATION


def test_public_exports():
  assert paddle_graph.__version__
  for name in paddle_graph.__all__:
    assert hasattr(paddle_graph, name)
