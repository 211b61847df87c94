"""
Syntax-tree rewrite of compiled ESM output into a plain script.

The compiler leaves module syntax in place; ExportRewriter walks the
top-level statements of the parsed module and records text edits that
remove imports, rebind or drop default exports, and annotate named
exports. Edits are applied back to front so earlier ranges stay valid.
"""

import re
from typing import List, Optional, Tuple

import esprima
from esprima.error_handler import Error as EsprimaError

RESERVED_BINDING = "__exportedComponent"

_SCAFFOLDING_PATTERNS = (
    (re.compile(r"""^\s*(['"])use strict\1;?[ \t]*\n?""", re.M), ""),
    (
        re.compile(
            r"""^\s*Object\.defineProperty\(\s*exports\s*,\s*(['"])__esModule\1\s*,\s*\{[^}]*\}\s*\);?[ \t]*\n?""",
            re.M,
        ),
        "",
    ),
    (re.compile(r"""\bexports\.__exportedComponent\s*=\s*"""), f"const {RESERVED_BINDING} = "),
)
_CJS_DEFAULT = re.compile(r"""^(\s*)(?:module\.)?exports\.default\s*=\s*""", re.M)


class RewriteError(Exception):
    """The compiled output could not be parsed or rewritten."""


def strip_scaffolding(code: str, primary: bool) -> str:
    """Remove strict-mode pragmas and module interop markers."""
    for pattern, replacement in _SCAFFOLDING_PATTERNS:
        code = pattern.sub(replacement, code)
    if primary and RESERVED_BINDING not in code:
        code = _CJS_DEFAULT.sub(rf"\1const {RESERVED_BINDING} = ", code, count=1)
    return code


def validate_script(code: str) -> None:
    """
    Parse code as a classic script.

    Raises:
        RewriteError: If the text is not a complete, valid script
    """
    try:
        esprima.parseScript(code)
    except EsprimaError as e:
        raise RewriteError(f"Output is not valid script: {e}") from e


def exported_annotation(names: List[str]) -> str:
    return f"// Exported: {', '.join(names)}" if names else ""


class ExportRewriter:
    """
    Visitor over a parsed module's top-level statements.

    visit_<NodeType> methods return a replacement string for the node's
    source range, or None to leave it alone.
    """

    def __init__(self, source: str, primary: bool):
        self.source = source
        self.primary = primary
        self.edits: List[Tuple[int, int, str]] = []
        self.bound = False

    def rewrite(self) -> str:
        try:
            program = esprima.parseModule(self.source, {"range": True, "jsx": True})
        except EsprimaError as e:
            raise RewriteError(f"Cannot parse compiled module: {e}") from e

        for node in program.body:
            self.visit(node)

        code = self.source
        for start, end, replacement in sorted(self.edits, key=lambda edit: edit[0], reverse=True):
            code = code[:start] + replacement + code[end:]
        return code

    def visit(self, node) -> None:
        method = getattr(self, f"visit_{node.type}", None)
        if method is None:
            return
        replacement = method(node)
        if replacement is not None:
            start, end = node.range
            self.edits.append((start, end, replacement))

    def text(self, node) -> str:
        start, end = node.range
        return self.source[start:end]

    def bind(self, expression: str) -> str:
        self.bound = True
        return f"const {RESERVED_BINDING} = {expression};"

    def visit_ImportDeclaration(self, node) -> str:
        return ""

    def visit_ExportAllDeclaration(self, node) -> str:
        return ""

    def visit_ExportDefaultDeclaration(self, node) -> str:
        declaration = node.declaration
        is_declaration = declaration.type in ("FunctionDeclaration", "ClassDeclaration")
        name: Optional[str] = declaration.id.name if is_declaration and declaration.id else None

        if name:
            body = self.text(declaration)
            return f"{body}\n{self.bind(name)}" if self.primary else body

        expression = self.text(declaration)
        if self.primary:
            return self.bind(expression)
        if declaration.type == "Identifier":
            return ""
        # Anonymous helper default: keep it as an inert expression statement
        return f"({expression});"

    def visit_ExportNamedDeclaration(self, node) -> str:
        if node.declaration is not None:
            return self.text(node.declaration)

        names = []
        lines = []
        for specifier in node.specifiers or []:
            local = specifier.local.name
            exported = specifier.exported.name
            if exported == "default" and node.source is None:
                if self.primary:
                    lines.append(self.bind(local))
                continue
            names.append(exported if exported == local else f"{local} as {exported}")

        annotation = exported_annotation(names)
        if annotation:
            lines.append(annotation)
        return "\n".join(lines)


def rewrite_module(code: str, primary: bool) -> str:
    """Rewrite compiled ESM into script text and strip compiler scaffolding."""
    rewritten = ExportRewriter(code, primary).rewrite()
    return strip_scaffolding(rewritten, primary)
