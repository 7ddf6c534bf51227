"""
Tests for Conversion Configuration.

Verifies that:
1. Field validators normalize dtypes and log levels.
2. ConversionConfig.load() picks up [tool.paddle_graph] from pyproject.toml.
3. Explicit arguments override TOML settings.
"""

import pytest
from pydantic import ValidationError

from paddle_graph.config import DEFAULT_MODEL_FILENAME, ConversionConfig


@pytest.fixture
def project(tmp_path):
  """Creates a pyproject.toml above a model directory."""
  (tmp_path / "pyproject.toml").write_text(
    """
[tool.paddle_graph]
block_index = 1
default_dtype = "float16"
tensor_version = 2
log_level = "debug"
model_filename = "program.json"
""",
    encoding="utf-8",
  )
  model_dir = tmp_path / "models" / "mobilenet"
  model_dir.mkdir(parents=True)
  return model_dir


def test_defaults(tmp_path):
  config = ConversionConfig(model_dir=tmp_path)
  assert config.model_filename == DEFAULT_MODEL_FILENAME
  assert config.block_index == 0
  assert config.default_dtype == "float32"
  assert config.tensor_version == 0
  assert config.log_level == "INFO"
  assert config.model_path == tmp_path / DEFAULT_MODEL_FILENAME


def test_dtype_is_normalized(tmp_path):
  assert ConversionConfig(model_dir=tmp_path, default_dtype="f4").default_dtype == "float32"


def test_invalid_dtype(tmp_path):
  with pytest.raises(ValidationError, match="Unknown dtype"):
    ConversionConfig(model_dir=tmp_path, default_dtype="quaternion")


def test_invalid_log_level(tmp_path):
  with pytest.raises(ValidationError, match="Unknown log level"):
    ConversionConfig(model_dir=tmp_path, log_level="verbose")


def test_negative_block_index(tmp_path):
  with pytest.raises(ValidationError):
    ConversionConfig(model_dir=tmp_path, block_index=-1)


def test_load_from_parent_toml(project):
  config = ConversionConfig.load(project)

  assert config.model_dir == project
  assert config.block_index == 1
  assert config.default_dtype == "float16"
  assert config.tensor_version == 2
  assert config.log_level == "DEBUG"
  assert config.model_filename == "program.json"


def test_arguments_override_toml(project):
  config = ConversionConfig.load(project, block_index=0, default_dtype="float64", log_level="warning")

  assert config.block_index == 0
  assert config.default_dtype == "float64"
  assert config.log_level == "WARNING"
  assert config.tensor_version == 2


def test_explicit_search_path(project, tmp_path):
  elsewhere = tmp_path / "elsewhere"
  elsewhere.mkdir()
  (elsewhere / "pyproject.toml").write_text("[tool.other]\nkey = 1\n", encoding="utf-8")

  config = ConversionConfig.load(project, search_path=elsewhere)
  assert config.block_index == 0


def test_malformed_toml_falls_back_to_defaults(tmp_path):
  (tmp_path / "pyproject.toml").write_text("[tool.paddle_graph\nblock_index = ", encoding="utf-8")
  config = ConversionConfig.load(tmp_path)
  assert config.block_index == 0
