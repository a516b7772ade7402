"""Tree input contract: the parsed-tree value handed over by a tree parser."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import InputShapeError

_KNOWN_KEYS = {"name", "length", "children", "rooted"}


@dataclass(frozen=True)
class TreeNode:
    name: Optional[str] = None
    length: Optional[float] = None
    children: Tuple["TreeNode", ...] = field(default_factory=tuple)
    rooted: Optional[bool] = None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def leaves(self) -> Iterator["TreeNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                yield node
            else:
                stack.extend(reversed(node.children))

    def is_rooted(self) -> bool:
        """Rootedness of a root node; a root without the flag is rooted iff bifurcating."""
        if self.rooted is not None:
            return self.rooted
        return len(self.children) == 2


def tree_from_mapping(data: Any, *, trim_quotes: bool = False) -> TreeNode:
    """Build a validated TreeNode from the parser's JSON shape.

    Nodes are checked in pre-order and assembled bottom-up with an explicit
    stack, so ladder-shaped trees thousands of levels deep are accepted.
    """
    parents: List[int] = []
    fields: List[Tuple[Optional[str], Optional[float], Optional[bool]]] = []
    stack: List[Tuple[Any, Any, int]] = [(data, "root", -1)]
    while stack:
        node_data, path, parent = stack.pop()
        name, length, rooted, raw_children = _check_mapping(node_data, path, trim_quotes)
        parents.append(parent)
        fields.append((name, length, rooted if parent < 0 else None))
        index = len(fields) - 1
        for idx in range(len(raw_children) - 1, -1, -1):
            stack.append((raw_children[idx], _ChildPath(path, idx), index))

    # children have larger pre-order indices than their parent and arrive here last-first
    collected: List[List[TreeNode]] = [[] for _ in fields]
    for index in range(len(fields) - 1, -1, -1):
        name, length, rooted = fields[index]
        node = TreeNode(
            name=name, length=length, children=tuple(reversed(collected[index])), rooted=rooted
        )
        collected[index] = []
        if parents[index] >= 0:
            collected[parents[index]].append(node)
    return node


def _check_mapping(
    data: Any, path: Any, trim_quotes: bool
) -> Tuple[Optional[str], Optional[float], Optional[bool], Sequence[Any]]:
    if not isinstance(data, Mapping):
        raise InputShapeError(f"{path} must be an object, got {type(data).__name__}")
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise InputShapeError(f"{path} has unknown field(s): {', '.join(map(str, unknown))}")

    name = _check_name(data.get("name"), path)
    if name is not None and trim_quotes:
        name = name.strip("\"'")
    length = _check_length(data.get("length"), path)
    rooted = _check_rooted(data.get("rooted"), path)

    raw_children = data.get("children")
    if raw_children is None:
        raw_children = []
    if not isinstance(raw_children, (list, tuple)):
        raise InputShapeError(
            f"{path}.children must be an array or null, got {type(raw_children).__name__}"
        )
    return name, length, rooted, raw_children


def validate_tree(node: Any, path: str = "root") -> None:
    """Check an already-built tree value against the input contract."""
    stack: List[Tuple[Any, Any]] = [(node, path)]
    while stack:
        current, current_path = stack.pop()
        if not isinstance(current, TreeNode):
            raise InputShapeError(f"{current_path} must be a TreeNode, got {type(current).__name__}")
        _check_name(current.name, current_path)
        _check_length(current.length, current_path)
        _check_rooted(current.rooted, current_path)
        if not isinstance(current.children, tuple):
            raise InputShapeError(
                f"{current_path}.children must be a tuple of TreeNode, "
                f"got {type(current.children).__name__}"
            )
        for idx in range(len(current.children) - 1, -1, -1):
            stack.append((current.children[idx], _ChildPath(current_path, idx)))


class _ChildPath:
    """Lazily joined path of a child below an already-named node."""

    def __init__(self, parent: Any, idx: int) -> None:
        self.parent = parent
        self.idx = idx

    def __str__(self) -> str:
        parts = []
        path: Any = self
        while isinstance(path, _ChildPath):
            parts.append(f".children[{path.idx}]")
            path = path.parent
        return str(path) + "".join(reversed(parts))


def _check_name(value: Any, path: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise InputShapeError(f"{path}.name must be a string or null, got {type(value).__name__}")


def _check_length(value: Any, path: Any) -> Optional[float]:
    if value is None:
        return None
    # bool is an int subclass but never a branch length
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InputShapeError(f"{path}.length must be a number or null, got {type(value).__name__}")
    length = float(value)
    if not math.isfinite(length) or length < 0:
        raise InputShapeError(f"{path}.length must be a finite non-negative number, got {value!r}")
    return length


def _check_rooted(value: Any, path: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    raise InputShapeError(f"{path}.rooted must be a boolean, got {type(value).__name__}")
