from __future__ import annotations

import json
import sys
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from phylolayout import HeuristicTextMetrics, layout_tree, to_svg

SVG = "{http://www.w3.org/2000/svg}"
TREE = {
    "name": "root",
    "children": [
        {"name": "X", "length": 1, "children": [{"name": "A", "length": 1}, {"name": "B", "length": 1}]},
        {"name": "C", "length": 2},
    ],
}


class SvgRendererTests(unittest.TestCase):
    def setUp(self) -> None:
        self.metrics = HeuristicTextMetrics()

    def test_document_matches_program(self) -> None:
        program = layout_tree(TREE, metrics=self.metrics, width=300, height=120)
        root = ET.fromstring(to_svg(program))
        self.assertEqual(root.tag, f"{SVG}svg")
        self.assertEqual(root.get("width"), "300")
        self.assertEqual(root.get("viewBox"), "0 0 300 120")
        lines = root.findall(f".//{SVG}line")
        texts = root.findall(f".//{SVG}text")
        self.assertEqual(len(lines), len(program.branches))
        self.assertEqual([t.text for t in texts], [op.text for op in program.labels])

    def test_document_is_indented(self) -> None:
        program = layout_tree(TREE, metrics=self.metrics, width=300, height=120)
        self.assertIn('\n  <g class="branches"', to_svg(program, background="none"))

    def test_root_stub_is_dashed(self) -> None:
        program = layout_tree(TREE, metrics=self.metrics, width=300, height=120)
        first = ET.fromstring(to_svg(program)).find(f".//{SVG}line")
        self.assertEqual(first.get("stroke-dasharray"), "1 2")

    def test_background_rect_optional(self) -> None:
        program = layout_tree(TREE, metrics=self.metrics, width=300, height=120)
        with_bg = ET.fromstring(to_svg(program, background="#fff"))
        without = ET.fromstring(to_svg(program, background="none"))
        self.assertIsNotNone(with_bg.find(f"{SVG}rect"))
        self.assertIsNone(without.find(f"{SVG}rect"))

    def test_vertical_labels_are_rotated(self) -> None:
        program = layout_tree(
            TREE, metrics=self.metrics, width=120, height=300, orientation="vertical"
        )
        texts = ET.fromstring(to_svg(program)).findall(f".//{SVG}text")
        tip = next(t for t in texts if t.text == "A")
        self.assertTrue(tip.get("transform", "").startswith("rotate(-90 "))
        internal = next(t for t in texts if t.text == "X")
        self.assertIsNone(internal.get("transform"))

    def test_italic_labels(self) -> None:
        program = layout_tree(TREE, metrics=self.metrics, width=300, tip_label_italic=True)
        texts = ET.fromstring(to_svg(program)).findall(f".//{SVG}text")
        tip = next(t for t in texts if t.text == "A")
        self.assertEqual(tip.get("font-style"), "italic")


class ProgramSerializationTests(unittest.TestCase):
    def test_to_dict_is_json_ready(self) -> None:
        program = layout_tree(TREE, metrics=HeuristicTextMetrics(), width=300, scale_bar=True)
        data = json.loads(json.dumps(program.to_dict()))
        self.assertEqual(data["width"], 300.0)
        self.assertEqual({op["type"] for op in data["branches"]}, {"line"})
        self.assertEqual({op["type"] for op in data["labels"]}, {"text"})
        self.assertEqual(data["branches"][0]["dash"], "1 2")
        self.assertEqual(len(data["labels"][0]["position"]), 2)


if __name__ == "__main__":
    unittest.main()
