"""Public API for phylolayout."""
from .errors import ConfigurationError, InputShapeError, LayoutInfeasibleError, PhylolayoutError
from .layout import TreeOptions, layout_tree, measure_tree
from .metrics import HeuristicTextMetrics, PillowTextMetrics, TextStyle
from .ops import DrawingProgram, LineOp, TextOp
from .svg import to_svg
from .tree import TreeNode, tree_from_mapping, validate_tree

__all__ = [
    "layout_tree",
    "measure_tree",
    "to_svg",
    "tree_from_mapping",
    "validate_tree",
    "TreeNode",
    "TreeOptions",
    "DrawingProgram",
    "LineOp",
    "TextOp",
    "TextStyle",
    "HeuristicTextMetrics",
    "PillowTextMetrics",
    "PhylolayoutError",
    "InputShapeError",
    "ConfigurationError",
    "LayoutInfeasibleError",
]
