"""Declaration extraction for breaking-change detection.

Python and Java go through tree-sitter; Kotlin has no maintained wheel-packaged grammar,
so a line-based extractor covers the declaration forms that matter for public API
comparison (classes, objects, functions and properties).
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple

import tree_sitter_java as ts_java
import tree_sitter_python as ts_python
from tree_sitter import Language as TSLanguage, Node, Parser

from ..log import get_logger

logger = get_logger(__name__)


class Visibility(Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    INTERNAL = "internal"
    PACKAGE = "package"
    PRIVATE = "private"

    @property
    def rank(self) -> int:
        return _VISIBILITY_RANK[self]

    @property
    def is_exported(self) -> bool:
        """Visible to callers outside the declaring file's package."""
        return self.rank >= _VISIBILITY_RANK[Visibility.PROTECTED]


_VISIBILITY_RANK = {
    Visibility.PUBLIC: 3,
    Visibility.PROTECTED: 2,
    Visibility.INTERNAL: 2,
    Visibility.PACKAGE: 1,
    Visibility.PRIVATE: 0,
}


@dataclass(frozen=True)
class Declaration:
    """A named declaration with its normalised signature."""
    name: str  # qualified with enclosing types, e.g. ``Player.play``
    kind: str
    signature: str
    visibility: Visibility
    line: int


class UnparseableSource(ValueError):
    """Source text has syntax errors; declarations would be unreliable."""


_LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".pyi": "python",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
}

# Language objects are immutable and shared; parsers are created per call.
_TS_LANGUAGES = {
    "python": TSLanguage(ts_python.language()),
    "java": TSLanguage(ts_java.language()),
}


def language_for(path: str) -> Optional[str]:
    """Declaration language for ``path`` or None if unsupported."""
    return _LANGUAGE_BY_SUFFIX.get(PurePosixPath(path).suffix.lower())


def parse_declarations(content: str, language: str) -> Dict[str, Declaration]:
    """Map qualified name -> Declaration. Overloads are folded into one entry."""
    if language == "python":
        found = _PythonExtractor().extract(content)
    elif language == "java":
        found = _JavaExtractor().extract(content)
    elif language == "kotlin":
        found = _extract_kotlin(content)
    else:
        raise ValueError(f"Language {language} not supported")
    return _fold_overloads(found)


def _fold_overloads(found: List[Declaration]) -> Dict[str, Declaration]:
    grouped: Dict[str, List[Declaration]] = {}
    for declaration in found:
        grouped.setdefault(declaration.name, []).append(declaration)

    folded = {}
    for name, group in grouped.items():
        if len(group) == 1:
            folded[name] = group[0]
            continue
        visibility = max((item.visibility for item in group), key=lambda v: v.rank)
        signature = " | ".join(sorted(item.signature for item in group))
        folded[name] = Declaration(name, group[0].kind, signature, visibility, group[0].line)
    return folded


def _normalize(text: str) -> str:
    text = re.sub(r"\s+", " ", text).strip()
    text = re.sub(r"\s*([(),:<>\[\]=])\s*", r"\1", text)
    return text.replace(",", ", ")


def _text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return node.text.decode("utf8")


def _narrowest(first: Visibility, second: Visibility) -> Visibility:
    return first if first.rank <= second.rank else second


class _TreeSitterExtractor(ABC):
    """Walks a tree-sitter parse of one language, collecting declarations."""
    language = ""

    def extract(self, content: str) -> List[Declaration]:
        parser = Parser(_TS_LANGUAGES[self.language])
        tree = parser.parse(bytes(content, "utf8"))
        if tree.root_node.has_error:
            raise UnparseableSource(f"{self.language} source contains syntax errors")
        declarations: List[Declaration] = []
        self._visit(tree.root_node, None, Visibility.PUBLIC, declarations)
        return declarations

    @abstractmethod
    def _visit(self, node: Node, owner: Optional[str], owner_visibility: Visibility,
               out: List[Declaration]):
        """Append declarations found under ``node``."""


class _PythonExtractor(_TreeSitterExtractor):
    language = "python"

    def _visit(self, node, owner, owner_visibility, out):
        for child in node.named_children:
            target = child
            if child.type == "decorated_definition":
                target = child.child_by_field_name("definition")
                if target is None:
                    continue
            if target.type == "function_definition":
                self._function(target, owner, owner_visibility, out)
            elif target.type == "class_definition":
                self._class(target, owner, owner_visibility, out)

    @staticmethod
    def _visibility(name: str) -> Visibility:
        if name.startswith("__") and name.endswith("__"):
            return Visibility.PUBLIC
        return Visibility.PRIVATE if name.startswith("_") else Visibility.PUBLIC

    def _function(self, node, owner, owner_visibility, out):
        name = _text(node.child_by_field_name("name"))
        if not name:
            return
        signature = _text(node.child_by_field_name("parameters"))
        return_type = node.child_by_field_name("return_type")
        if return_type is not None:
            signature = f"{signature} -> {_text(return_type)}"
        visibility = _narrowest(self._visibility(name), owner_visibility)
        out.append(Declaration(
            name=f"{owner}.{name}" if owner else name,
            kind="method" if owner else "function",
            signature=_normalize(signature),
            visibility=visibility,
            line=node.start_point[0] + 1,
        ))

    def _class(self, node, owner, owner_visibility, out):
        name = _text(node.child_by_field_name("name"))
        if not name:
            return
        qualified = f"{owner}.{name}" if owner else name
        visibility = _narrowest(self._visibility(name), owner_visibility)
        out.append(Declaration(
            name=qualified,
            kind="class",
            signature=_normalize(_text(node.child_by_field_name("superclasses"))),
            visibility=visibility,
            line=node.start_point[0] + 1,
        ))
        body = node.child_by_field_name("body")
        if body is not None:
            self._visit(body, qualified, visibility, out)


class _JavaExtractor(_TreeSitterExtractor):
    language = "java"

    _TYPE_NODES = {
        "class_declaration": "class",
        "interface_declaration": "interface",
        "enum_declaration": "enum",
        "record_declaration": "record",
        "annotation_type_declaration": "annotation",
    }
    _BODY_NODES = {"class_body", "interface_body", "enum_body", "enum_body_declarations",
                   "annotation_type_body"}

    def __init__(self):
        self._interface_depth: List[bool] = []

    def _visit(self, node, owner, owner_visibility, out):
        for child in node.named_children:
            if child.type in self._TYPE_NODES:
                self._type(child, owner, owner_visibility, out)
            elif child.type == "method_declaration":
                self._method(child, owner, owner_visibility, out)
            elif child.type == "constructor_declaration":
                self._constructor(child, owner, owner_visibility, out)
            elif child.type in ("field_declaration", "constant_declaration"):
                self._field(child, owner, owner_visibility, out)
            elif child.type == "enum_constant" and owner:
                name = _text(child.child_by_field_name("name"))
                out.append(Declaration(f"{owner}.{name}", "constant", "", owner_visibility,
                                       child.start_point[0] + 1))
            elif child.type in self._BODY_NODES:
                self._visit(child, owner, owner_visibility, out)

    def _declared_visibility(self, node: Node) -> Visibility:
        for child in node.children:
            if child.type != "modifiers":
                continue
            for token in child.children:
                if token.type == "public":
                    return Visibility.PUBLIC
                if token.type == "protected":
                    return Visibility.PROTECTED
                if token.type == "private":
                    return Visibility.PRIVATE
        # Interface members are implicitly public.
        if self._interface_depth and self._interface_depth[-1]:
            return Visibility.PUBLIC
        return Visibility.PACKAGE

    def _type(self, node, owner, owner_visibility, out):
        name = _text(node.child_by_field_name("name"))
        if not name:
            return
        kind = self._TYPE_NODES[node.type]
        qualified = f"{owner}.{name}" if owner else name
        visibility = self._declared_visibility(node)
        if owner:
            visibility = _narrowest(visibility, owner_visibility)
        header = " ".join(
            _text(node.child_by_field_name(field))
            for field in ("type_parameters", "parameters", "superclass", "interfaces")
            if node.child_by_field_name(field) is not None
        )
        out.append(Declaration(qualified, kind, _normalize(header), visibility,
                               node.start_point[0] + 1))
        body = node.child_by_field_name("body")
        if body is not None:
            self._interface_depth.append(kind in ("interface", "annotation"))
            try:
                self._visit(body, qualified, visibility, out)
            finally:
                self._interface_depth.pop()

    def _method(self, node, owner, owner_visibility, out):
        name = _text(node.child_by_field_name("name"))
        if not name:
            return
        signature = "{} {}{}".format(
            _text(node.child_by_field_name("type")),
            _text(node.child_by_field_name("type_parameters")),
            _text(node.child_by_field_name("parameters")),
        )
        visibility = _narrowest(self._declared_visibility(node), owner_visibility)
        out.append(Declaration(f"{owner}.{name}" if owner else name, "method",
                               _normalize(signature), visibility, node.start_point[0] + 1))

    def _constructor(self, node, owner, owner_visibility, out):
        signature = _text(node.child_by_field_name("parameters"))
        visibility = _narrowest(self._declared_visibility(node), owner_visibility)
        out.append(Declaration(f"{owner}.<init>", "constructor",
                               _normalize(signature), visibility, node.start_point[0] + 1))

    def _field(self, node, owner, owner_visibility, out):
        field_type = _text(node.child_by_field_name("type"))
        visibility = _narrowest(self._declared_visibility(node), owner_visibility)
        for declarator in node.children_by_field_name("declarator"):
            name = _text(declarator.child_by_field_name("name"))
            if not name:
                continue
            out.append(Declaration(f"{owner}.{name}" if owner else name, "field",
                                   _normalize(field_type), visibility,
                                   declarator.start_point[0] + 1))


_KOTLIN_MODIFIERS = (
    "public|private|protected|internal|open|abstract|override|final|data|sealed|inline|"
    "suspend|operator|infix|enum|annotation|inner|value|const|lateinit|companion|external|"
    "tailrec|expect|actual"
)
_KOTLIN_DECLARATION = re.compile(
    rf"^\s*(?:@[\w.]+(?:\([^)]*\))?\s+)*(?P<modifiers>(?:(?:{_KOTLIN_MODIFIERS})\s+)*)"
    r"(?P<kind>fun|class|interface|object|val|var)\s+"
    r"(?:<[^>]*>\s*)?(?:[\w.]+\.)?(?P<name>\w+)?(?P<rest>.*)$"
)
_KOTLIN_CONTAINERS = {"class", "interface", "object"}


def _kotlin_visibility(modifiers: str) -> Visibility:
    words = set(modifiers.split())
    for candidate in (Visibility.PRIVATE, Visibility.PROTECTED, Visibility.INTERNAL):
        if candidate.value in words:
            return candidate
    return Visibility.PUBLIC


def _kotlin_signature(kind: str, rest: str) -> str:
    # Signature ends where the body or initializer starts.
    cut = len(rest)
    depth = 0
    for index, char in enumerate(rest):
        if char in "(<":
            depth += 1
        elif char in ")>":
            depth = max(depth - 1, 0)
        elif depth == 0 and (char == "{" or (char == "=" and kind in ("fun", "val", "var"))):
            cut = index
            break
    return _normalize(rest[:cut])


def _strip_kotlin_literals(line: str) -> str:
    line = re.sub(r'"(?:\\.|[^"\\])*"', '""', line)
    line = re.sub(r"'(?:\\.|[^'\\])*'", "''", line)
    return line.split("//", 1)[0]


@dataclass
class _KotlinHeader:
    """A declaration header that may continue over several lines."""
    name: Optional[str]  # None for an anonymous companion object
    kind: str
    visibility: Visibility
    owner: Optional[str]
    line: int
    text: str
    parens: int = 0


def _continues_header(header: _KotlinHeader, line: str) -> bool:
    stripped = line.strip()
    return (stripped.startswith(("{", ":", "=", "where"))
            or header.text.rstrip().endswith((",", ":")))


def _close_header(header: _KotlinHeader,
                  out: List[Declaration]) -> Tuple[Optional[str], str, Visibility]:
    """Record the declaration; returns the scope its body would open."""
    if header.name is None:
        # companion object: members are addressed through the enclosing class
        return header.owner, "object", header.visibility
    out.append(Declaration(
        name=header.name,
        kind="function" if header.kind == "fun" else header.kind,
        signature=_kotlin_signature(header.kind, header.text),
        visibility=header.visibility,
        line=header.line,
    ))
    kind = header.kind if header.kind in _KOTLIN_CONTAINERS else "body"
    return header.name, kind, header.visibility


def _extract_kotlin(content: str) -> List[Declaration]:
    declarations: List[Declaration] = []
    # One scope per open brace: (owner name, kind, visibility, brace depth).
    scopes: List[Tuple[Optional[str], str, Visibility, int]] = []
    depth = 0
    in_comment = False
    header: Optional[_KotlinHeader] = None

    for line_number, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line
        if in_comment:
            if "*/" not in line:
                continue
            line = line.split("*/", 1)[1]
            in_comment = False
        line = re.sub(r"/\*.*?\*/", "", line)
        if "/*" in line:
            line, in_comment = line.split("/*", 1)[0], True
        line = _strip_kotlin_literals(line)

        if header is not None and header.parens == 0 and not _continues_header(header, line):
            _close_header(header, declarations)
            header = None

        opened = None
        scan_from = 0
        if header is not None:
            header.text += " " + line
        else:
            match = _KOTLIN_DECLARATION.match(line)
            innermost = scopes[-1] if scopes else None
            local = innermost is not None and innermost[1] not in _KOTLIN_CONTAINERS
            if match and not local:
                kind = match.group("kind")
                name = match.group("name")
                owner = innermost[0] if innermost else None
                visibility = _kotlin_visibility(match.group("modifiers"))
                if innermost is not None:
                    visibility = _narrowest(visibility, innermost[2])
                if name or kind == "object":
                    qualified = (f"{owner}.{name}" if owner else name) if name else None
                    header = _KotlinHeader(qualified, kind, visibility, owner, line_number,
                                           text=match.group("rest"))
                    scan_from = match.start("rest")

        for index, char in enumerate(line):
            if header is not None and index >= scan_from:
                if char == "(":
                    header.parens += 1
                elif char == ")":
                    header.parens = max(header.parens - 1, 0)
                elif header.parens == 0 and (
                        char == "{" or (char == "=" and header.kind in ("fun", "val", "var"))):
                    opened = _close_header(header, declarations)
                    header = None
            if char == "{":
                depth += 1
                if opened is not None:
                    scopes.append(opened + (depth,))
                    opened = None
                else:
                    scopes.append((None, "block", Visibility.PRIVATE, depth))
            elif char == "}":
                if scopes and scopes[-1][3] == depth:
                    scopes.pop()
                depth = max(depth - 1, 0)

    if header is not None:
        if header.parens:
            raise UnparseableSource(
                f"kotlin declaration {header.name} at line {header.line} is never closed")
        _close_header(header, declarations)
    return declarations
