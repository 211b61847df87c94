import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

import esprima
from esprima.error_handler import Error as EsprimaError
from py_mini_racer import JSEvalException, JSTimeoutException, MiniRacer

from livescreen.exceptions import EvaluationError

from .symbols import PRELUDE, SymbolTable

logger = logging.getLogger("livescreen.sandbox")

RESERVED_BINDING = "__exportedComponent"
_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
_DECLARATION = re.compile(r"\b(?:const|let|var|function\*?|class)\s+([A-Za-z_$][\w$]*)")


@dataclass
class EvaluatedComponent:
    """What the sandbox learned about the value a module exported."""

    module_id: str
    binding: str
    value_type: str
    display_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "module_id": self.module_id,
            "binding": self.binding,
            "value_type": self.value_type,
            "display_name": self.display_name,
        }


def _pattern_names(node) -> List[str]:
    if node is None:
        return []
    if node.type == "Identifier":
        return [node.name]
    if node.type == "ObjectPattern":
        names = []
        for prop in node.properties:
            names.extend(_pattern_names(prop.argument if prop.type == "RestElement" else prop.value))
        return names
    if node.type == "ArrayPattern":
        names = []
        for element in node.elements:
            names.extend(_pattern_names(element))
        return names
    if node.type == "RestElement":
        return _pattern_names(node.argument)
    if node.type == "AssignmentPattern":
        return _pattern_names(node.left)
    return []


def _outermost_text(code: str) -> str:
    """Code with every brace-delimited block blanked out."""
    depth = 0
    kept = []
    for char in code:
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(depth - 1, 0)
        elif depth == 0:
            kept.append(char)
            continue
        kept.append(" ")
    return "".join(kept)


def declared_names(code: str) -> Set[str]:
    """
    Names bound by the top-level declarations of a script.

    Declarations inside functions or blocks do not count: they live in
    their own scope and never clash with the symbol parameters.
    """
    try:
        program = esprima.parseScript(code)
    except EsprimaError as e:
        logger.debug(f"Declaration scan using outer text only: {e}")
        return set(_DECLARATION.findall(_outermost_text(code)))

    names: Set[str] = set()
    for node in program.body:
        if node.type == "VariableDeclaration":
            for declarator in node.declarations:
                names.update(_pattern_names(declarator.id))
        elif node.type in ("FunctionDeclaration", "ClassDeclaration") and node.id is not None:
            names.add(node.id.name)
    return names


def candidate_bindings(module_id: str) -> List[str]:
    """
    Binding names tried, in order, for a module's exported value.

    1. the reserved primary binding
    2. a binding named exactly like the module id, when that is an identifier
    """
    candidates = [RESERVED_BINDING]
    if module_id != RESERVED_BINDING and _IDENTIFIER.match(module_id):
        candidates.append(module_id)
    return candidates


def build_script(
    code: str, module_id: str, symbols: SymbolTable, helpers: Sequence[str] = ()
) -> str:
    """
    Wrap module code as the body of a function whose parameters are the symbol names.

    Helper code runs first in the same scope. Symbols the code declares
    at its top level are left out, so a real implementation shadows the
    fallback. The function returns the candidate bindings; the outer wrapper picks the
    first non-null one and returns a JSON description of it.
    """
    declared: Set[str] = set()
    for chunk in list(helpers) + [code]:
        declared |= declared_names(chunk)
    bindings = [(name, expr) for name, expr in symbols.bindings() if name not in declared]
    names = [name for name, _ in bindings]
    arguments = ",\n    ".join(expression for _, expression in bindings)
    candidates = candidate_bindings(module_id)
    probes = ", ".join(
        f"[{json.dumps(name)}, typeof {name} !== 'undefined' ? {name} : null]" for name in candidates
    )
    body = "\n;\n".join(list(helpers) + [code])
    return (
        "(function () {\n"
        f"{PRELUDE}\n"
        f"  var __candidates = (function ({', '.join(names)}) {{\n"
        f"{body}\n"
        f"  ;return [{probes}];\n"
        f"  }})(\n    {arguments}\n  );\n"
        "  for (var i = 0; i < __candidates.length; i++) {\n"
        "    var value = __candidates[i][1];\n"
        "    if (value !== null && value !== undefined) {\n"
        "      return JSON.stringify({ binding: __candidates[i][0], type: typeof value,\n"
        "        name: (value && (value.displayName || value.name)) || null });\n"
        "    }\n"
        "  }\n"
        "  return JSON.stringify(null);\n"
        "})()"
    )


class ExecutionSandbox:
    """
    Evaluates transformed modules in a fresh V8 context per call.

    The context has no host bindings; the script sees only the declared
    symbol table. Evaluation runs in a worker thread with a wall-clock limit.
    """

    def __init__(self, timeout: float = 2.0, max_memory: Optional[int] = None):
        self.timeout = timeout
        self.max_memory = max_memory

    def _run(self, script: str) -> str:
        ctx = MiniRacer()
        try:
            return ctx.eval(script, timeout_sec=self.timeout, max_memory=self.max_memory)
        finally:
            ctx.close()

    async def evaluate(
        self,
        code: str,
        module_id: str,
        symbols: Optional[SymbolTable] = None,
        helpers: Sequence[str] = (),
    ) -> EvaluatedComponent:
        """
        Evaluate a module and resolve its exported component.

        Raises:
            EvaluationError: Script threw, timed out, or no candidate binding is non-null
        """
        symbols = symbols if symbols is not None else SymbolTable.default()
        script = build_script(code, module_id, symbols, helpers)

        try:
            raw = await asyncio.to_thread(self._run, script)
        except JSTimeoutException as e:
            raise EvaluationError(
                f"Evaluation of {module_id} timed out after {self.timeout}s", module_id=module_id
            ) from e
        except JSEvalException as e:
            raise EvaluationError(
                f"Evaluation of {module_id} failed: {e}", module_id=module_id
            ) from e

        described = json.loads(raw) if isinstance(raw, str) else None
        if not described:
            tried = ", ".join(candidate_bindings(module_id))
            raise EvaluationError(
                f"{module_id} produced no component (tried {tried})", module_id=module_id
            )

        logger.debug(f"Evaluated {module_id} via {described['binding']}")
        return EvaluatedComponent(
            module_id=module_id,
            binding=described["binding"],
            value_type=described["type"],
            display_name=described.get("name"),
        )
