from __future__ import annotations

import sys
import unittest
from fractions import Fraction
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from phylolayout import (
    ConfigurationError,
    HeuristicTextMetrics,
    LayoutInfeasibleError,
    TreeOptions,
    layout_tree,
    tree_from_mapping,
)
from phylolayout.layout import (
    DEFAULT_WIDTH,
    ROOT_DASH,
    Margins,
    build_style,
    compute_margins,
    longest_tip_label,
    measure_tree,
    resolve_layout,
)

METRICS = HeuristicTextMetrics()

TWO_TIPS = {"children": [{"name": "A", "length": 1}, {"name": "B", "length": 2}]}
WITH_INTERNAL = {
    "children": [
        {
            "name": "X",
            "length": 1,
            "children": [{"name": "A", "length": 1}, {"name": "B", "length": 1}],
        },
        {"name": "C", "length": 2},
    ]
}


def _segments(program):
    return [(op.p1, op.p2) for op in program.branches]


class MarginTests(unittest.TestCase):
    def _style(self, orientation="horizontal", rooted=True):
        return build_style(TreeOptions(orientation=orientation), rooted, METRICS)

    def test_tip_margin_is_longest_label_plus_gap(self) -> None:
        tree = tree_from_mapping({"children": [{"name": "A"}, {"name": "Bmw"}]})
        style = self._style()
        width, height = longest_tip_label(tree, style, METRICS)
        self.assertAlmostEqual(width, 6.0 + 9.0 + 9.0)
        self.assertAlmostEqual(height, 10.0)
        margins = compute_margins(style, width, height, None, METRICS)
        self.assertAlmostEqual(margins.tip, 28.0)

    def test_named_rooted_root_reserves_label_gap_and_stub(self) -> None:
        margins = compute_margins(self._style(), 0.0, 0.0, "root", METRICS)
        # "root" at size 8: four 4.8-wide glyphs
        self.assertAlmostEqual(margins.root, 19.2 + 4.0 + 10.0)

    def test_vertical_root_label_uses_its_height(self) -> None:
        margins = compute_margins(self._style("vertical"), 0.0, 10.0, "root", METRICS)
        self.assertAlmostEqual(margins.root, 8.0 + 4.0 + 10.0)
        self.assertAlmostEqual(margins.y_start, 10.0)

    def test_unnamed_root_margins(self) -> None:
        rooted = compute_margins(self._style(rooted=True), 0.0, 0.0, None, METRICS)
        unrooted = compute_margins(self._style(rooted=False), 0.0, 0.0, None, METRICS)
        self.assertEqual(rooted.root, 10.0)
        self.assertEqual(unrooted.root, 0.0)
        self.assertEqual(unrooted.y_start, 0.0)


class ResolveLayoutTests(unittest.TestCase):
    MARGINS = Margins(root=10.0, tip=10.0, y_start=0.0)

    def test_auto_height_scales_with_tip_count(self) -> None:
        res = resolve_layout(200, "auto", self.MARGINS, 4, False, em=10.0)
        self.assertEqual(res.height, 50.0)
        self.assertEqual(res.drawable_depth, 180.0)
        self.assertEqual(res.drawable_spread, 50.0)

    def test_fraction_widths(self) -> None:
        res = resolve_layout("50%", 100, self.MARGINS, 4, False, available_width=600.0)
        self.assertEqual(res.width, 300.0)
        res = resolve_layout(Fraction(1, 4), 100, self.MARGINS, 4, False, available_width=800.0)
        self.assertEqual(res.width, 200.0)

    def test_unbounded_available_width_uses_default(self) -> None:
        res = resolve_layout("80%", 100, self.MARGINS, 4, False)
        self.assertEqual(res.width, DEFAULT_WIDTH)

    def test_vertical_swaps_axes(self) -> None:
        margins = Margins(root=10.0, tip=10.0, y_start=5.0)
        res = resolve_layout(100, 300, margins, 4, True)
        self.assertEqual((res.width, res.height), (100.0, 300.0))
        self.assertEqual((res.pre_width, res.pre_height), (300.0, 100.0))
        self.assertEqual(res.drawable_depth, 280.0)
        self.assertEqual(res.drawable_spread, 95.0)

    def test_width_smaller_than_margins_fails(self) -> None:
        with self.assertRaises(LayoutInfeasibleError) as ctx:
            resolve_layout(15, 100, self.MARGINS, 4, False)
        message = str(ctx.exception)
        self.assertIn("width too small", message)
        self.assertIn("short by 5", message)
        self.assertIn("root length", message)

    def test_vertical_reports_height_for_depth_axis(self) -> None:
        with self.assertRaises(LayoutInfeasibleError) as ctx:
            resolve_layout(100, 20, self.MARGINS, 4, True)
        self.assertIn("height too small", str(ctx.exception))

    def test_spread_axis_must_exceed_reserved_rows(self) -> None:
        margins = Margins(root=0.0, tip=10.0, y_start=10.0, y_end=30.0)
        with self.assertRaises(LayoutInfeasibleError):
            resolve_layout(100, 40, margins, 4, False)

    def test_resolution_round_trips(self) -> None:
        for vertical in (False, True):
            first = resolve_layout(240, "auto", self.MARGINS, 6, vertical, em=10.0)
            again = resolve_layout(first.width, first.height, self.MARGINS, 6, vertical)
            self.assertEqual(first, again)

    def test_bad_extents_are_configuration_errors(self) -> None:
        for width in ("wide", -5, 0, "0%", True):
            with self.assertRaises(ConfigurationError):
                resolve_layout(width, 100, self.MARGINS, 4, False)


class LayoutTreeTests(unittest.TestCase):
    def test_two_tip_tree_geometry(self) -> None:
        program = layout_tree(TWO_TIPS, metrics=METRICS, width=200, height=100)
        self.assertEqual((program.width, program.height), (200.0, 100.0))
        self.assertEqual(
            _segments(program),
            [
                ((0.0, 50.0), (10.0, 50.0)),
                ((10.0, 25.0), (10.0, 75.0)),
                ((10.0, 25.0), (100.0, 25.0)),
                ((10.0, 75.0), (190.0, 75.0)),
            ],
        )
        self.assertEqual(program.branches[0].dash, ROOT_DASH)
        self.assertIsNone(program.branches[1].dash)
        self.assertEqual([label.text for label in program.labels], ["A", "B"])
        self.assertEqual(program.labels[0].position, (104.0, 22.5))
        self.assertEqual(program.labels[1].position, (194.0, 72.5))

    def test_single_leaf_tree_has_no_branches(self) -> None:
        program = layout_tree({"name": "A"}, metrics=METRICS, width=100, height=50)
        self.assertEqual(program.branches, ())
        self.assertEqual(len(program.labels), 1)
        self.assertEqual(program.labels[0].text, "A")

    def test_rooted_single_leaf_reserves_no_stub(self) -> None:
        program = layout_tree(
            {"name": "A", "rooted": True}, metrics=METRICS, width=100, height=50
        )
        self.assertEqual(program.branches, ())
        self.assertEqual(program.labels[0].position[0], 4.0)

    def test_deep_ladder_tree(self) -> None:
        tree = {"name": "T0", "length": 1}
        for idx in range(1, 1001):
            tree = {"length": 1, "children": [tree, {"name": f"T{idx}", "length": 1}]}
        program = layout_tree(tree, metrics=METRICS, width=800)
        self.assertEqual(len(program.labels), 1001)
        # 2000 branches, 1000 connectors and the root stub
        self.assertEqual(len(program.branches), 3001)
        self.assertEqual(program.labels[0].text, "T0")
        self.assertEqual(program.labels[-1].text, "T1000")

    def test_tiny_branch_lengths_get_readable_scale_label(self) -> None:
        tree = {"children": [{"name": "A", "length": 1e-9}, {"name": "B", "length": 2e-9}]}
        program = layout_tree(tree, metrics=METRICS, width=200, height=100, scale_bar=True)
        self.assertEqual(program.labels[-1].text, "2.5e-10")
        bar = program.branches[-3]
        self.assertAlmostEqual(bar.p2[0] - bar.p1[0], 22.5, places=6)

    def test_unrooted_tree_has_no_root_stub(self) -> None:
        three = {"children": [{"name": n, "length": 1} for n in "ABC"]}
        program = layout_tree(three, metrics=METRICS, width=200, height=100)
        self.assertTrue(all(op.dash is None for op in program.branches))
        explicit = dict(TWO_TIPS, rooted=False)
        program = layout_tree(explicit, metrics=METRICS, width=200, height=100)
        self.assertTrue(all(op.dash is None for op in program.branches))

    def test_internal_label_follows_its_subtree(self) -> None:
        program = layout_tree(WITH_INTERNAL, metrics=METRICS, width=200, height=120)
        self.assertEqual([label.text for label in program.labels], ["A", "B", "X", "C"])
        label = program.labels[2]
        # X sits at x = 10 + 1 * 90, y = 1.0 * 40
        self.assertLessEqual(label.position[0] + label.width, 100.0)
        self.assertLess(label.position[1] + label.height, 40.0)
        self.assertEqual(label.rotation, 0.0)

    def test_named_root_label_left_of_stub(self) -> None:
        tree = dict(TWO_TIPS, name="R")
        program = layout_tree(tree, metrics=METRICS, width=200, height=100)
        label = program.labels[-1]
        self.assertEqual(label.text, "R")
        self.assertAlmostEqual(label.position[0], 0.0)
        stub = program.branches[0]
        self.assertAlmostEqual(stub.p1[0], label.width + 4.0)

    def test_cladogram_branches_share_one_length(self) -> None:
        program = layout_tree(
            WITH_INTERNAL, metrics=METRICS, width=200, height=120, cladogram=True
        )
        horizontal = [
            op.p2[0] - op.p1[0]
            for op in program.branches
            if op.p1[1] == op.p2[1] and op.dash is None
        ]
        self.assertEqual(len(horizontal), 4)
        for length in horizontal:
            self.assertAlmostEqual(length, 90.0)

    def test_vertical_layout_rotates_whole_drawing(self) -> None:
        program = layout_tree(
            TWO_TIPS, metrics=METRICS, width=100, height=200, orientation="vertical"
        )
        self.assertEqual((program.width, program.height), (100.0, 200.0))
        stub = program.branches[0]
        self.assertEqual((stub.p1, stub.p2), ((55.0, 200.0), (55.0, 190.0)))
        for op in program.branches:
            for x, y in (op.p1, op.p2):
                self.assertTrue(0.0 <= x <= 100.0 and 0.0 <= y <= 200.0)
        self.assertTrue(all(label.rotation == -90.0 for label in program.labels))

    def test_orientations_are_congruent_along_depth_axis(self) -> None:
        horizontal = layout_tree(TWO_TIPS, metrics=METRICS, width=200, height=100)
        vertical = layout_tree(
            TWO_TIPS, metrics=METRICS, width=100, height=200, orientation="vertical"
        )
        self.assertEqual(
            (horizontal.width, horizontal.height), (vertical.height, vertical.width)
        )
        along_depth_h = sorted(
            abs(op.p2[0] - op.p1[0]) for op in horizontal.branches if op.p1[1] == op.p2[1]
        )
        along_depth_v = sorted(
            abs(op.p2[1] - op.p1[1]) for op in vertical.branches if op.p1[0] == op.p2[0]
        )
        self.assertEqual(along_depth_h, along_depth_v)
        self.assertEqual(len(horizontal.branches), len(vertical.branches))

    def test_vertical_internal_label_reads_horizontally(self) -> None:
        program = layout_tree(
            WITH_INTERNAL, metrics=METRICS, width=120, height=200, orientation="vertical"
        )
        label = next(label for label in program.labels if label.text == "X")
        self.assertEqual(label.rotation, 0.0)

    def test_scale_bar_row(self) -> None:
        program = layout_tree(
            TWO_TIPS, metrics=METRICS, width=200, height=100, scale_bar=True, scale_unit="subst/site"
        )
        bar = program.branches[-3]
        self.assertEqual(bar.p1, (10.0, 87.0))
        self.assertAlmostEqual(bar.p2[0], 32.5)
        self.assertEqual(program.labels[-1].text, "0.25 subst/site")
        self.assertEqual((program.width, program.height), (200.0, 100.0))

    def test_explicit_scale_length_too_long(self) -> None:
        with self.assertRaises(LayoutInfeasibleError):
            layout_tree(
                TWO_TIPS, metrics=METRICS, width=200, height=100, scale_bar=True, scale_length=50.0
            )

    def test_axis_row(self) -> None:
        program = layout_tree(TWO_TIPS, metrics=METRICS, width=200, height=100, axis=True)
        texts = [label.text for label in program.labels[-5:]]
        self.assertEqual(texts, ["0", "0.5", "1", "1.5", "2"])

    def test_round_trip_through_program_bounding_box(self) -> None:
        tree = tree_from_mapping(WITH_INTERNAL)
        for orientation in ("horizontal", "vertical"):
            options = TreeOptions(width=240, height="auto", orientation=orientation)
            program = layout_tree(tree, options, metrics=METRICS)
            style = build_style(options, tree.is_rooted(), METRICS)
            width, height = longest_tip_label(tree, style, METRICS)
            margins = compute_margins(style, width, height, tree.name, METRICS)
            tips = measure_tree(tree).height
            first = resolve_layout(240, "auto", margins, tips, style.is_vertical, em=10.0)
            again = resolve_layout(program.width, program.height, margins, tips, style.is_vertical)
            self.assertEqual(first.drawable_depth, again.drawable_depth)
            self.assertEqual(first.drawable_spread, again.drawable_spread)

    def test_layout_is_deterministic(self) -> None:
        first = layout_tree(WITH_INTERNAL, metrics=METRICS, width=200, height=120)
        second = layout_tree(WITH_INTERNAL, metrics=METRICS, width=200, height=120)
        self.assertEqual(first, second)

    def test_too_narrow_fails(self) -> None:
        with self.assertRaises(LayoutInfeasibleError) as ctx:
            layout_tree(TWO_TIPS, metrics=METRICS, width=15, height=100)
        self.assertIn("increase the width", str(ctx.exception))


class OptionValidationTests(unittest.TestCase):
    def test_cladogram_excludes_scale_bar(self) -> None:
        with self.assertRaises(ConfigurationError):
            layout_tree(TWO_TIPS, metrics=METRICS, cladogram=True, scale_bar=True)

    def test_scale_bar_excludes_axis(self) -> None:
        with self.assertRaises(ConfigurationError):
            layout_tree(TWO_TIPS, metrics=METRICS, axis=True, scale_bar=True)

    def test_non_positive_sizes(self) -> None:
        for override in ({"stroke_width": 0}, {"tip_label_size": -1}, {"root_length": -2}):
            with self.assertRaises(ConfigurationError):
                layout_tree(TWO_TIPS, metrics=METRICS, **override)

    def test_unknown_orientation(self) -> None:
        with self.assertRaises(ConfigurationError):
            layout_tree(TWO_TIPS, metrics=METRICS, orientation="diagonal")

    def test_unknown_override(self) -> None:
        with self.assertRaises(ConfigurationError):
            layout_tree(TWO_TIPS, metrics=METRICS, colour="red")

    def test_options_from_mapping(self) -> None:
        options = TreeOptions.from_mapping({"scale-bar": True, "scale_unit": "my"})
        self.assertTrue(options.scale_bar)
        self.assertEqual(options.scale_unit, "my")
        with self.assertRaises(ConfigurationError):
            TreeOptions.from_mapping({"bogus": 1})
        with self.assertRaises(ConfigurationError):
            TreeOptions.from_mapping(["width", 10])


if __name__ == "__main__":
    unittest.main()
