"""Pseudo-source reconstruction: stack translation, CFG and structuring."""

from ..exceptions import TranslationError
from ..options import Generation
from .cfg import CFG, BasicBlock, CFGBuilder, LoopInfo, Terminator
from .emit_structured import StructuredEmitter
from .translate import FunctionTranslator, Naming, Translation, quote, translate_function

__all__ = [
    "CFG",
    "BasicBlock",
    "CFGBuilder",
    "LoopInfo",
    "Terminator",
    "StructuredEmitter",
    "FunctionTranslator",
    "Naming",
    "Translation",
    "quote",
    "translate_function",
    "structure_function",
]


def structure_function(function, naming: Naming, generation: Generation = Generation.U7):
    """Return the structured body lines of *function*.

    Raises :class:`~ucxt.exceptions.TranslationError` when the function
    cannot be expressed as pseudo-source, including control flow nested
    deeper than the interpreter's recursion limit.
    """

    translations = translate_function(function, naming, generation)
    cfg = CFGBuilder(translations).build()
    try:
        return StructuredEmitter(cfg, translations).emit()
    except RecursionError:
        raise TranslationError(
            f"control flow of {len(cfg.blocks)} blocks nests too deeply to structure"
        ) from None
