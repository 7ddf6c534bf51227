"""
Console and Logging Setup.

paddle-graph reports progress through the standard `logging` module; records
are rendered by a `rich` handler attached to the root logger. The handler
writes to whatever console currently sits behind the module-level `console`
proxy, so a caller can capture the output of a conversion by installing a
recording console with `set_console` and reading it back with `export_text`.

Attributes:
    console (_ConsoleProxy): Stable handle on the active Rich console.
"""

import logging
from typing import Any, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Between INFO and WARNING, used for completed conversions.
SUCCESS_LEVEL_NUM = 25
logging.addLevelName(SUCCESS_LEVEL_NUM, "SUCCESS")

_THEME = Theme(
  {
    "logging.level.success": "green",
    "info": "dim cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "green",
    "op": "bold magenta",
    "var": "bold blue",
  }
)


def _build_handler(target: Console) -> RichHandler:
  return RichHandler(
    console=target,
    show_time=False,
    omit_repeated_times=False,
    show_path=False,
    markup=True,
    rich_tracebacks=True,
  )


def _resolve_level(level: Union[int, str]) -> int:
  if isinstance(level, str):
    resolved = logging.getLevelName(level.strip().upper())
  else:
    resolved = level
  if not isinstance(resolved, int):
    raise ValueError(f"Unknown log level: {level!r}")
  return resolved


class _ConsoleProxy:
  """
  Stand-in for a `rich.console.Console` whose target can change at runtime.

  Modules keep importing the same `console` object while the proxy swaps the
  console it forwards to, together with the root logger's Rich handler.

  Attributes:
      _backend (Console): Console receiving output.
      _level (int): Root logger threshold restored on every reconfiguration.
  """

  def __init__(self) -> None:
    self._backend: Console = Console(theme=_THEME)
    self._level: int = logging.INFO
    self._install_handler()

  @property
  def backend(self) -> Console:
    """The console currently receiving output."""
    return self._backend

  def set_backend(self, new_console: Console) -> None:
    """
    Redirects printing and logging to another console.

    Args:
        new_console (Console): Console to forward to, e.g. one created with ``record=True``.
    """
    self._backend = new_console
    self._install_handler()

  def reset(self) -> None:
    """Returns to a fresh stdout console with an INFO threshold."""
    self._backend = Console(theme=_THEME)
    self._level = logging.INFO
    self._install_handler()

  def set_level(self, level: Union[int, str]) -> None:
    """
    Changes the root logging threshold.

    Args:
        level (Union[int, str]): A level number or a name such as "DEBUG" or "SUCCESS".

    Raises:
        ValueError: If the name is not a registered level.
    """
    self._level = _resolve_level(level)
    logging.getLogger().setLevel(self._level)

  def _install_handler(self) -> None:
    root = logging.getLogger()
    # Only one Rich handler may point at a console at any time.
    for handler in [h for h in root.handlers if isinstance(h, RichHandler)]:
      root.removeHandler(handler)
    root.setLevel(self._level)
    root.addHandler(_build_handler(self._backend))

  def print(self, *args: Any, **kwargs: Any) -> None:
    self._backend.print(*args, **kwargs)

  def export_text(self, **kwargs: Any) -> str:
    """
    Returns text recorded by the active console.

    Args:
        **kwargs: Passed to `Console.export_text`.

    Returns:
        str: Recorded output; empty unless the console records.
    """
    return self._backend.export_text(**kwargs)

  def __getattr__(self, name: str) -> Any:
    return getattr(self._backend, name)


console = _ConsoleProxy()


def set_console(new_console: Console) -> None:
  """
  Sends all subsequent output to `new_console`.

  Args:
      new_console (Console): The console to install.
  """
  console.set_backend(new_console)


def reset_console() -> None:
  """Restores stdout output and the INFO threshold."""
  console.reset()


def get_console() -> Console:
  return console.backend


def set_log_level(level: Union[int, str]) -> None:
  """
  Sets the package-wide logging threshold.

  Args:
      level (Union[int, str]): Level number or name.
  """
  console.set_level(level)


def _emit(level: int, prefix: str, msg: str) -> None:
  logging.log(level, f"{prefix}{msg}", extra={"markup": True})


def log_info(msg: str) -> None:
  """
  Logs a progress message.

  Args:
      msg (str): Message text; may contain Rich markup such as ``[var]x[/var]``.
  """
  _emit(logging.INFO, "ℹ️  ", msg)


def log_success(msg: str) -> None:
  """Logs a completed step at the SUCCESS level."""
  _emit(SUCCESS_LEVEL_NUM, "✅ ", msg)


def log_warning(msg: str) -> None:
  _emit(logging.WARNING, "⚠️  ", msg)


def log_error(msg: str) -> None:
  """
  Logs a failure.

  Args:
      msg (str): Message text. Escape untrusted text with `rich.markup.escape`.
  """
  _emit(logging.ERROR, "❌ ", msg)
