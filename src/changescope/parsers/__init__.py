"""Source parsers used by the analyzers."""

from .declaration_parser import (
    Declaration, UnparseableSource, Visibility, language_for, parse_declarations
)

__all__ = ["Declaration", "UnparseableSource", "Visibility", "language_for", "parse_declarations"]
