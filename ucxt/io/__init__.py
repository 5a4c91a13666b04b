"""Input helpers: the byte cursor and companion-file loaders."""

from .cursor import ByteCursor
from .loader import load_flag_names, load_image_bytes, load_intrinsic_names

__all__ = ["ByteCursor", "load_flag_names", "load_image_bytes", "load_intrinsic_names"]
