"""
Conversion Configuration Store.

Holds the settings for one conversion run and resolves them from explicit
arguments layered over the ``[tool.paddle_graph]`` table of the nearest
``pyproject.toml``.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field, field_validator

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib

DEFAULT_MODEL_FILENAME = "__model__.json"


class ConversionConfig(BaseModel):
  """
  Configuration container for the conversion engine.
  """

  model_dir: Path = Field(..., description="Directory holding the program descriptor and tensor payload files.")
  model_filename: str = Field(DEFAULT_MODEL_FILENAME, description="Program descriptor file name inside model_dir.")
  block_index: int = Field(0, ge=0, description="Index of the program block to convert.")
  default_dtype: str = Field("float32", description="Element type used for variables that declare none.")
  tensor_version: int = Field(0, description="Required value of the inner tensor payload version tag.")
  log_level: str = Field("INFO", description="Logging threshold applied when the engine starts.")

  @field_validator("default_dtype")
  @classmethod
  def validate_dtype(cls, v: str) -> str:
    """
    Ensures the dtype names a fixed-width numpy type.

    Args:
        v (str): The dtype name.

    Returns:
        str: The canonical numpy name (e.g. 'float32').

    Raises:
        ValueError: If numpy does not recognise the name.
    """
    try:
      return np.dtype(v.strip()).name
    except TypeError as e:
      raise ValueError(f"Unknown dtype: '{v}'") from e

  @field_validator("log_level")
  @classmethod
  def validate_log_level(cls, v: str) -> str:
    """
    Normalizes the log level name.

    Args:
        v (str): Level name in any case.

    Returns:
        str: Upper-cased level name.

    Raises:
        ValueError: If the level is not a standard logging level.
    """
    level = v.upper().strip()
    if level not in {"DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
      raise ValueError(f"Unknown log level: '{v}'")
    return level

  @property
  def model_path(self) -> Path:
    """
    Full path of the program descriptor file.

    Returns:
        Path: model_dir / model_filename.
    """
    return self.model_dir / self.model_filename

  @classmethod
  def load(
    cls,
    model_dir: Path,
    model_filename: Optional[str] = None,
    block_index: Optional[int] = None,
    default_dtype: Optional[str] = None,
    log_level: Optional[str] = None,
    search_path: Optional[Path] = None,
  ) -> "ConversionConfig":
    """
    Loads configuration from pyproject.toml and overrides with explicit arguments.

    Args:
        model_dir (Path): Model directory to convert.
        model_filename (Optional[str]): Override for the descriptor file name.
        block_index (Optional[int]): Override for the block to convert.
        default_dtype (Optional[str]): Override for the fallback element type.
        log_level (Optional[str]): Override for the logging threshold.
        search_path (Optional[Path]): Directory to start searching for TOML config.
            Defaults to the model directory.

    Returns:
        ConversionConfig: The fully resolved configuration object.
    """
    toml_config, _ = _load_toml_settings(search_path or Path(model_dir))

    values: Dict[str, Any] = {"model_dir": Path(model_dir)}
    for key, override in (
      ("model_filename", model_filename),
      ("block_index", block_index),
      ("default_dtype", default_dtype),
      ("log_level", log_level),
    ):
      if override is not None:
        values[key] = override
      elif key in toml_config:
        values[key] = toml_config[key]

    if "tensor_version" in toml_config:
      values["tensor_version"] = toml_config["tensor_version"]

    return cls(**values)


def _load_toml_settings(start_path: Path) -> Tuple[Dict[str, Any], Optional[Path]]:
  """
  Searches the start directory and its parents for 'pyproject.toml'.

  Args:
      start_path (Path): Directory to start search from.

  Returns:
      Tuple[Dict, Optional[Path]]: The ``[tool.paddle_graph]`` table and the
      directory it was found in, or an empty dict and None.
  """
  current = start_path.resolve()

  for parent in [current, *current.parents]:
    toml_path = parent / "pyproject.toml"
    if toml_path.is_file():
      try:
        with open(toml_path, "rb") as f:
          data = tomllib.load(f)
      except (OSError, tomllib.TOMLDecodeError):
        return {}, None

      tool_section = data.get("tool", {})
      return tool_section.get("paddle_graph", {}), parent

  return {}, None
