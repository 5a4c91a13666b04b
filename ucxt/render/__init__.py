"""Output views over a decoded usecode image."""

from typing import Dict, Type

from ..options import OutputMode
from .assembly import AssemblyRenderer
from .base import RenderContext, Renderer
from .extern_header import ExternHeaderRenderer
from .flag_report import FlagReportRenderer
from .listing import ListingRenderer
from .pseudo_source import PseudoSourceRenderer
from .trans_table import TransTableRenderer

__all__ = [
    "AssemblyRenderer",
    "ExternHeaderRenderer",
    "FlagReportRenderer",
    "ListingRenderer",
    "PseudoSourceRenderer",
    "RENDERERS",
    "RenderContext",
    "Renderer",
    "TransTableRenderer",
]

RENDERERS: Dict[OutputMode, Type[Renderer]] = {
    OutputMode.LISTING: ListingRenderer,
    OutputMode.ASM: AssemblyRenderer,
    OutputMode.UCS: PseudoSourceRenderer,
    OutputMode.FLAGS: FlagReportRenderer,
    OutputMode.TRANS_TABLE: TransTableRenderer,
    OutputMode.EXTERN: ExternHeaderRenderer,
}
