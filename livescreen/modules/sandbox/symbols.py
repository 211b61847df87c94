"""
Symbol table injected into sandboxed modules.

Three groups of bindings: UI primitives and React (defined by PRELUDE),
platform shims, and best-effort context accessors. Accessors prefer a
literal default found in the workspace's context or token modules and
otherwise fall back to a fixed safe value, so a screen that reads theme
or cart state still evaluates without its real provider.
"""

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import esprima
from esprima.error_handler import Error as EsprimaError

logger = logging.getLogger("livescreen.sandbox.symbols")

_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")

# Minimal React and host primitives. Elements are plain objects; hooks are
# inert so a component can be called outside a renderer.
PRELUDE = r"""
function __createElement(type, props) {
  var children = Array.prototype.slice.call(arguments, 2);
  var p = {};
  for (var k in (props || {})) { p[k] = props[k]; }
  if (children.length) { p.children = children.length === 1 ? children[0] : children; }
  return { $$typeof: "livescreen.element", type: type, props: p };
}
var __noop = function () {};
var __asyncNoop = function () { return Promise.resolve(); };
var React = {
  createElement: __createElement,
  Fragment: "Fragment",
  useState: function (initial) { return [typeof initial === "function" ? initial() : initial, __noop]; },
  useReducer: function (reducer, initial, init) { return [init ? init(initial) : initial, __noop]; },
  useEffect: __noop,
  useLayoutEffect: __noop,
  useMemo: function (factory) { return factory(); },
  useCallback: function (fn) { return fn; },
  useRef: function (initial) { return { current: initial }; },
  useContext: function (ctx) { return ctx ? ctx._currentValue : undefined; },
  createContext: function (value) { return { _currentValue: value, Provider: "Provider", Consumer: "Consumer" }; },
  memo: function (component) { return component; },
  forwardRef: function (render) { return function (props) { return render(props, null); }; },
  Component: function Component(props) { this.props = props; }
};
"""

PRIMITIVE_NAMES = (
    "View", "Text", "ScrollView", "TouchableOpacity", "TouchableHighlight",
    "Pressable", "Image", "ImageBackground", "TextInput", "FlatList",
    "SectionList", "SafeAreaView", "ActivityIndicator", "Switch", "Modal",
    "KeyboardAvoidingView", "StatusBar", "RefreshControl",
)

REACT_EXPRESSIONS = {
    "React": "React",
    "Fragment": "React.Fragment",
    "useState": "React.useState",
    "useReducer": "React.useReducer",
    "useEffect": "React.useEffect",
    "useLayoutEffect": "React.useLayoutEffect",
    "useMemo": "React.useMemo",
    "useCallback": "React.useCallback",
    "useRef": "React.useRef",
    "useContext": "React.useContext",
    "createContext": "React.createContext",
    "memo": "React.memo",
    "forwardRef": "React.forwardRef",
}

PLATFORM_EXPRESSIONS = {
    "StyleSheet": "({ create: function (s) { return s; }, flatten: function (s) { return Array.isArray(s) ? Object.assign.apply(null, [{}].concat(s)) : (s || {}); }, hairlineWidth: 1, absoluteFill: { position: 'absolute', top: 0, left: 0, right: 0, bottom: 0 } })",
    "Dimensions": "({ get: function () { return { width: 390, height: 844, scale: 3, fontScale: 1 }; }, addEventListener: function () { return { remove: __noop }; } })",
    "Platform": "({ OS: 'web', Version: 0, select: function (o) { return 'web' in o ? o.web : ('default' in o ? o.default : o.ios); } })",
    "Alert": "({ alert: __noop })",
    "Linking": "({ openURL: __asyncNoop, canOpenURL: function () { return Promise.resolve(false); } })",
    "Animated": "({ View: 'Animated.View', Text: 'Animated.Text', Value: function (v) { this._value = v; }, timing: function () { return { start: __noop }; }, spring: function () { return { start: __noop }; } })",
    "AsyncStorage": "(function () { var s = {}; return { getItem: function (k) { return Promise.resolve(k in s ? s[k] : null); }, setItem: function (k, v) { s[k] = String(v); return Promise.resolve(); }, removeItem: function (k) { delete s[k]; return Promise.resolve(); }, clear: function () { s = {}; return Promise.resolve(); }, getAllKeys: function () { return Promise.resolve(Object.keys(s)); } }; })()",
    "useSafeAreaInsets": "function () { return { top: 0, right: 0, bottom: 0, left: 0 }; }",
    "useNavigation": "function () { return { navigate: __noop, goBack: __noop, push: __noop, replace: __noop, reset: __noop, setOptions: __noop, addListener: function () { return __noop; } }; }",
    "useRoute": "function () { return { key: 'preview', name: 'preview', params: {} }; }",
    "useFocusEffect": "__noop",
    "useIsFocused": "function () { return true; }",
}

FALLBACK_COLORS = {
    "primary": "#007AFF",
    "secondary": "#5856D6",
    "background": "#FFFFFF",
    "surface": "#F2F2F7",
    "text": "#000000",
    "textSecondary": "#8E8E93",
    "border": "#C6C6C8",
    "error": "#FF3B30",
    "success": "#34C759",
    "warning": "#FF9500",
}

FALLBACK_CONTEXT = {
    "theme": {"colors": FALLBACK_COLORS, "isDark": False},
    "member": {"member": None, "isLoggedIn": False, "loading": False},
    "cart": {"items": [], "itemCount": 0, "total": 0},
    "SPACING": {"xs": 4, "sm": 8, "md": 16, "lg": 24, "xl": 32, "xxl": 48},
    "COLORS": FALLBACK_COLORS,
}

# Where each context default may be declared in a workspace, in lookup order
CONTEXT_SOURCES = {
    "theme": ("defaultTheme", "lightTheme", "theme"),
    "member": ("defaultMemberState", "initialMemberState", "initialState"),
    "cart": ("defaultCartState", "initialCartState", "initialState"),
    "SPACING": ("SPACING", "spacing"),
    "COLORS": ("COLORS", "colors"),
}
CONTEXT_FILE_HINTS = {
    "theme": ("Theme", "theme"),
    "member": ("Member", "member", "Auth"),
    "cart": ("Cart", "cart"),
    "SPACING": (),
    "COLORS": (),
}


def literal_value(node) -> Any:
    """Python value of a literal-only expression node; raises ValueError otherwise."""
    kind = node.type
    if kind == "Literal":
        return node.value
    if kind == "UnaryExpression" and node.operator == "-" and node.argument.type == "Literal":
        return -node.argument.value
    if kind == "ArrayExpression":
        return [literal_value(e) for e in node.elements if e is not None]
    if kind == "ObjectExpression":
        result = {}
        for prop in node.properties:
            if prop.type != "Property" or prop.computed:
                continue
            key = prop.key.name if prop.key.type == "Identifier" else prop.key.value
            try:
                result[str(key)] = literal_value(prop.value)
            except ValueError:
                continue
        return result
    if kind == "Identifier" and node.name == "undefined":
        return None
    raise ValueError(f"not a literal: {kind}")


def _balanced(text: str, start: int) -> Optional[str]:
    opener = text[start]
    closer = {"{": "}", "[": "]"}[opener]
    depth = 0
    quote = None
    for i in range(start, len(text)):
        ch = text[i]
        if quote:
            if ch == quote and text[i - 1] != "\\":
                quote = None
            continue
        if ch in "'\"`":
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def find_literal(source: str, name: str) -> Optional[Any]:
    """Value of `const <name> = {...}` (type annotations allowed) if it is a plain literal."""
    pattern = re.compile(
        rf"\b(?:const|let|var)\s+{re.escape(name)}\s*(?::[^=]+)?=\s*([{{\[])"
    )
    match = pattern.search(source)
    if not match:
        return None
    text = _balanced(source, match.start(1))
    if text is None:
        return None
    try:
        program = esprima.parseScript(f"({text})")
        return literal_value(program.body[0].expression)
    except (EsprimaError, ValueError, AttributeError) as e:
        logger.debug(f"Could not read literal {name}: {e}")
        return None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def discover_context(context_files: Dict[str, Path]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """
    Context defaults found in the workspace, merged over the fallbacks.

    Returns the values and, per context name, where each came from
    ('fallback' or the file it was read from).
    """
    values = copy.deepcopy(FALLBACK_CONTEXT)
    origins = {name: "fallback" for name in values}

    sources = {}
    for stem, path in context_files.items():
        try:
            sources[stem] = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping context file {path}: {e}")

    for context, names in CONTEXT_SOURCES.items():
        hints = CONTEXT_FILE_HINTS[context]
        for stem, source in sources.items():
            if hints and not any(hint in stem for hint in hints):
                continue
            found = next(
                (v for v in (find_literal(source, n) for n in names) if isinstance(v, dict)),
                None,
            )
            if found:
                values[context] = _deep_merge(values[context], found)
                origins[context] = str(context_files[stem])
                break
    return values, origins


class SymbolTable:
    """
    Ordered name -> JavaScript expression bindings.

    Expressions are evaluated in the prelude scope, so they may refer to
    React and the other prelude helpers.
    """

    def __init__(self):
        self._bindings: Dict[str, str] = {}
        self.origins: Dict[str, str] = {}

    def define(self, name: str, expression: str) -> "SymbolTable":
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Symbol name is not a valid identifier: {name!r}")
        self._bindings[name] = expression
        return self

    def define_value(self, name: str, value: Any) -> "SymbolTable":
        return self.define(name, json.dumps(value))

    def names(self) -> List[str]:
        return list(self._bindings)

    def bindings(self) -> Iterable[Tuple[str, str]]:
        return self._bindings.items()

    def __contains__(self, name: str) -> bool:
        return name in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    @classmethod
    def minimal(cls) -> "SymbolTable":
        """React and host primitives only."""
        table = cls()
        for name, expression in REACT_EXPRESSIONS.items():
            table.define(name, expression)
        for name in PRIMITIVE_NAMES:
            table.define(name, json.dumps(name))
        return table

    @classmethod
    def default(cls, context_files: Optional[Dict[str, Path]] = None) -> "SymbolTable":
        """Primitives, platform shims and context accessors with workspace defaults."""
        table = cls.minimal()
        for name, expression in PLATFORM_EXPRESSIONS.items():
            table.define(name, expression)

        values, origins = discover_context(context_files or {})
        table.origins = origins
        theme = json.dumps(values["theme"])
        member = json.dumps(values["member"])
        cart = json.dumps(values["cart"])

        table.define(
            "useTheme",
            f"(function () {{ var t = {theme}; return function () {{ "
            "return { theme: t, colors: t.colors || {}, isDark: !!t.isDark, toggleTheme: __noop }; }; })()",
        )
        table.define(
            "useMember",
            f"(function () {{ var m = {member}; return function () {{ "
            "return Object.assign({ login: __asyncNoop, logout: __asyncNoop, refresh: __asyncNoop }, m); }; })()",
        )
        table.define(
            "useCart",
            f"(function () {{ var c = {cart}; return function () {{ "
            "return Object.assign({ addToCart: __noop, removeFromCart: __noop, updateQuantity: __noop, clearCart: __noop }, c); }; })()",
        )
        table.define_value("SPACING", values["SPACING"])
        table.define_value("COLORS", values["COLORS"])
        return table


def placeholder_component(module_id: str, message: str) -> str:
    """Script defining a visible error component in place of a broken screen."""
    title = json.dumps(f"❌ {module_id}")
    body = json.dumps(message[:2000])
    return (
        "const __exportedComponent = function LivescreenErrorPlaceholder() {\n"
        "  return React.createElement(View, { style: { flex: 1, padding: 20, "
        "justifyContent: 'center', backgroundColor: '#FFF5F5' } },\n"
        f"    React.createElement(Text, {{ style: {{ fontSize: 18, fontWeight: 'bold', color: '#FF3B30' }} }}, {title}),\n"
        f"    React.createElement(Text, {{ style: {{ marginTop: 8, color: '#333333' }} }}, {body}));\n"
        "};\n"
    )
