"""Error taxonomy shared by the layout pipeline and the CLI."""
from __future__ import annotations

from typing import Optional


class PhylolayoutError(ValueError):
    """Structured layout error with stable code for CLI mapping."""

    code = "E_PHYLOLAYOUT"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class InputShapeError(PhylolayoutError):
    """Raised when the supplied tree does not match the input contract."""

    code = "E_INPUT_SHAPE"


class ConfigurationError(PhylolayoutError):
    """Raised for invalid option values or combinations."""

    code = "E_CONFIG"


class LayoutInfeasibleError(PhylolayoutError):
    """Raised when labels, margins or the scale bar cannot fit the drawing."""

    code = "E_LAYOUT"
