"""
Line-oriented pattern rewrite used when the compiler path fails.

Same contract as the compiler path, achieved with regular expressions:
imports removed, default export rebound (primary) or dropped (helper),
named export lists annotated, export modifiers stripped. Simple type
aliases and interfaces are removed; anything more involved in the source
is left for validation to reject.
"""

import re
from typing import List, Optional

from .rewriter import RESERVED_BINDING, exported_annotation, strip_scaffolding

_IMPORT_FROM = re.compile(r"""^[ \t]*import\s[^;'"]*?\bfrom\s*(['"])[^'"]+\1[ \t]*;?[ \t]*$\n?""", re.M | re.S)
_IMPORT_BARE = re.compile(r"""^[ \t]*import\s*(['"])[^'"]+\1[ \t]*;?[ \t]*$\n?""", re.M)
_EXPORT_ALL = re.compile(r"""^[ \t]*export\s*\*\s*(?:as\s+\w+\s+)?from\s*(['"])[^'"]+\1[ \t]*;?[ \t]*$""", re.M)
_EXPORT_LIST = re.compile(r"""^[ \t]*export\s+(?:type\s+)?\{([^}]*)\}(\s*from\s*(['"])[^'"]+\3)?[ \t]*;?[ \t]*$""", re.M)
_EXPORT_DEFAULT_DECL = re.compile(r"""^([ \t]*)export\s+default\s+((?:async\s+)?function\b\s*\*?|class\b)\s*(\w+)?""", re.M)
_EXPORT_DEFAULT_EXPR = re.compile(r"""^([ \t]*)export\s+default\s+""", re.M)
_EXPORT_DEFAULT_IDENTIFIER = re.compile(r"""^[ \t]*export\s+default\s+[A-Za-z_$][\w$]*[ \t]*;?[ \t]*$\n?""", re.M)
_EXPORT_MODIFIER = re.compile(r"""^([ \t]*)export\s+(?=(?:const|let|var|function|async|class|enum)\b)""", re.M)
_TYPE_ALIAS_START = re.compile(r"""^[ \t]*(?:export\s+)?(?:declare\s+)?type\s+\w+(?:<[^=]*>)?\s*=""", re.M)
_INTERFACE_START = re.compile(r"""^[ \t]*(?:export\s+)?(?:declare\s+)?interface\s+\w+[^{]*\{""", re.M)


def _matching_brace(text: str, open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(text) - 1


def _strip_interfaces(code: str) -> str:
    while True:
        match = _INTERFACE_START.search(code)
        if not match:
            return code
        end = _matching_brace(code, match.end() - 1)
        code = code[: match.start()] + code[end + 1:]


def _strip_type_aliases(code: str) -> str:
    while True:
        match = _TYPE_ALIAS_START.search(code)
        if not match:
            return code
        i = match.end()
        depth = 0
        while i < len(code):
            ch = code[i]
            if ch in "{([<":
                depth += 1
            elif ch in "})]>":
                depth -= 1
            elif depth <= 0 and (ch == ";" or (ch == "\n" and not code[i + 1:i + 2].strip().startswith("|"))):
                break
            i += 1
        code = code[: match.start()] + code[i + 1:]


def _named_exports(spec_list: str, primary: bool) -> List[str]:
    lines = []
    names = []
    for part in spec_list.split(","):
        part = part.strip()
        if not part:
            continue
        pieces = re.split(r"\s+as\s+", part)
        local = pieces[0].strip()
        exported = pieces[-1].strip()
        if exported == "default":
            if primary:
                lines.append(f"const {RESERVED_BINDING} = {local};")
            continue
        names.append(part)
    annotation = exported_annotation(names)
    if annotation:
        lines.append(annotation)
    return lines


def pattern_rewrite(source: str, primary: bool) -> str:
    """Rewrite a module to script text with regular expressions only."""
    code = _IMPORT_FROM.sub("", source)
    code = _IMPORT_BARE.sub("", code)
    code = _strip_interfaces(code)
    code = _strip_type_aliases(code)
    code = _EXPORT_ALL.sub("", code)

    def export_list(match: re.Match) -> str:
        if match.group(2):
            names = [p.strip() for p in match.group(1).split(",") if p.strip()]
            return exported_annotation(names)
        return "\n".join(_named_exports(match.group(1), primary))

    code = _EXPORT_LIST.sub(export_list, code)

    default_name: Optional[str] = None
    declaration = _EXPORT_DEFAULT_DECL.search(code)
    if declaration:
        indent, keyword, name = declaration.groups()
        keyword = keyword.rstrip()
        if name == "extends":
            keyword, name = f"{keyword} extends", None
        if name:
            default_name = name
            prefix = f"{indent}{keyword} {name}"
        elif primary:
            prefix = f"{indent}const {RESERVED_BINDING} = {keyword}"
        else:
            # A comma expression keeps an anonymous declaration valid in statement position
            prefix = f"{indent}0, {keyword}"
        code = code[: declaration.start()] + prefix + code[declaration.end():]
    else:
        identifier = _EXPORT_DEFAULT_IDENTIFIER.search(code)
        expression = _EXPORT_DEFAULT_EXPR.search(code)
        if identifier and not primary:
            code = code[: identifier.start()] + code[identifier.end():]
        elif expression:
            indent = expression.group(1)
            prefix = f"{indent}const {RESERVED_BINDING} = " if primary else f"{indent}0, "
            code = code[: expression.start()] + prefix + code[expression.end():]

    code = _EXPORT_MODIFIER.sub(r"\1", code)

    if default_name and primary:
        code = code.rstrip() + f"\nconst {RESERVED_BINDING} = {default_name};\n"

    return strip_scaffolding(code, primary)
