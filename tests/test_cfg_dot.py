from pathlib import Path

import pytest

from ucxt.lifter.cfg import CFGBuilder
from ucxt.lifter.translate import Translation
from ucxt.render import cfg_dot
from ucxt.render.cfg_dot import render_cfg_dot, write_cfg_visualisation


def _loop_translations():
    return [
        Translation(0, metadata={"control": {"type": "cond", "condition": 'name == "Iolo"', "true_target": 1, "false_target": 3}}),
        Translation(1, lines=["say();"]),
        Translation(2, metadata={"control": {"type": "jump", "target": 0}}),
        Translation(3, metadata={"control": {"type": "return"}}),
    ]


def test_render_cfg_dot_marks_entry_and_back_edges() -> None:
    translations = _loop_translations()
    dot = render_cfg_dot(CFGBuilder(translations).build(), translations, title="void Func0401 object#(0x401) ()")

    assert dot.startswith("digraph CFG {")
    assert 'label="void Func0401 object#(0x401) ()";' in dot
    assert "shape=doubleoctagon" in dot
    assert 'if (name == \\"Iolo\\")' in dot
    assert "say();" in dot
    assert "B1 -> B0 [style=dashed" in dot
    assert dot.rstrip().endswith("}")


def test_write_without_graphviz_keeps_dot(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cfg_dot, "_try_render_with_graphviz", lambda dot, destination: False)
    translations = _loop_translations()

    dot_path, svg_path = write_cfg_visualisation(CFGBuilder(translations).build(), tmp_path / "out", "0401_talk", translations=translations)

    assert dot_path == tmp_path / "out" / "0401_talk.dot"
    assert dot_path.read_text(encoding="utf-8").startswith("digraph CFG {")
    assert svg_path is None


def test_write_with_graphviz(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_render(dot: str, destination: Path) -> bool:
        destination.write_text("<svg/>", encoding="utf-8")
        return True

    monkeypatch.setattr(cfg_dot, "_try_render_with_graphviz", fake_render)
    translations = _loop_translations()

    _, svg_path = write_cfg_visualisation(CFGBuilder(translations).build(), tmp_path, "0401_talk")

    assert svg_path == tmp_path / "0401_talk.svg"
    assert svg_path.read_text(encoding="utf-8") == "<svg/>"


def test_missing_dot_executable_is_not_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class _Source:
        def __init__(self, dot: str) -> None:
            self.dot = dot

        def pipe(self, format: str) -> bytes:
            raise cfg_dot.graphviz.ExecutableNotFound(["dot"])

    monkeypatch.setattr(cfg_dot.graphviz, "Source", _Source)
    assert not cfg_dot._try_render_with_graphviz("digraph {}", tmp_path / "x.svg")
    assert not (tmp_path / "x.svg").exists()
