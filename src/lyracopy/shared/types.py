"""Common type definitions."""

from typing import Callable, Union
from pathlib import Path

# Type alias for paths
PathLike = Union[str, Path]

# Receives one line of subprocess output
LineCallback = Callable[[str], None]
