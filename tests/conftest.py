"""Test configuration ensuring the project source tree is importable."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = ROOT / "tests"

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
else:
    idx = sys.path.index(root_str)
    if idx != 0:
        sys.path.insert(0, sys.path.pop(idx))

if str(TESTS) in sys.path:
    sys.path.pop(sys.path.index(str(TESTS)))
sys.path.insert(1, str(TESTS))

from usecode_builder import CodeBuilder, data_segment, u7_record  # noqa: E402


@pytest.fixture
def sample_image() -> bytes:
    """A greeting, a flag-driven branch, a caller and its callee."""

    data, offsets = data_segment("Hello", "Goodbye")
    greet = CodeBuilder().addsi(offsets[0]).say().ret().build()
    branch = (
        CodeBuilder()
        .pushf(0x1C)
        .jne("else")
        .addsi(offsets[0])
        .jmp("end")
        .label("else")
        .addsi(offsets[1])
        .pushb(1)
        .popf(0x1D)
        .label("end")
        .ret()
        .build()
    )
    caller = CodeBuilder().push(0).call(0).ret().build()
    return (
        u7_record(0x401, greet, data=data)
        + u7_record(0x402, branch, data=data)
        + u7_record(0x800, caller, num_args=1, externs=[0x801])
        + u7_record(0x801, CodeBuilder().ret().build(), num_args=1)
    )


@pytest.fixture
def image_file(tmp_path: Path, sample_image: bytes) -> Path:
    path = tmp_path / "usecode"
    path.write_bytes(sample_image)
    return path


@pytest.fixture(autouse=True)
def restore_root_logging():
    """``configure_logging`` replaces the root handlers; put them back."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
