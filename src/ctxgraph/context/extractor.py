"""Context extractor — L2 contract extraction for React/TypeScript sources.

L2 constraint: Only import from ctxgraph.context.models, hashing, errors, stdlib.
NO imports from store/graph/packer.

The extractor is a pluggable collaborator: anything with an
`extract(entry_id, contents) -> Contract` method can replace `ReactExtractor`.
This default implementation is regex based. It reads comment-stripped source,
so whitespace and comment edits never change the extracted signature.
"""

import posixpath
import re
from typing import Literal, Protocol

from ctxgraph.context.errors import ExtractionFailure
from ctxgraph.context.hashing import file_hash, semantic_hash
from ctxgraph.context.models import (
    ArrayType,
    BackendMetadata,
    Contract,
    ContractKind,
    EventType,
    ExportInfo,
    ExportKind,
    FunctionType,
    LiteralUnionType,
    LogicSignature,
    ObjectType,
    PropType,
    RouteInfo,
    SimpleType,
    StateType,
    StyleMetadata,
    VersionFingerprint,
    normalize_entry_id,
)

CodeInclusion = Literal["none", "header", "full"]


class Extractor(Protocol):
    """Turns one source file into a Contract."""

    def extract(self, entry_id: str, contents: bytes) -> Contract:
        """Extract a contract, raising ExtractionFailure when it cannot."""
        ...


# ===== Source preprocessing =====

_STRING_OR_COMMENT_RE = re.compile(
    r"(\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`)"
    r"|(/\*.*?\*/|//[^\n]*)",
    re.DOTALL,
)
_HEADER_RE = re.compile(r"^\s*(/\*\*.*?\*/)", re.DOTALL)


def strip_comments(source: str) -> str:
    """Remove // and /* */ comments, leaving string literals intact."""

    def _replace(match: re.Match[str]) -> str:
        if match.group(1) is not None:
            return match.group(1)
        # Keep line structure so member splitting still sees newlines
        return "\n" if "\n" in match.group(2) else " "

    return _STRING_OR_COMMENT_RE.sub(_replace, source)


def normalize_type_text(text: str) -> str:
    """Collapse whitespace and drop `undefined` members from a union."""
    cleaned = re.sub(r"\s+", " ", text).strip().rstrip(";,").strip()
    if cleaned.startswith("|"):
        cleaned = cleaned[1:].strip()
    members = [m.strip() for m in _split_top_level(cleaned, "|")]
    if len(members) > 1:
        members = [m for m in members if m and m != "undefined"]
        cleaned = " | ".join(members)
    return cleaned


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split on a separator that is not nested in brackets or strings."""
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []
    for char in text:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in "\"'`":
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


# ===== Type normalization =====

_LITERAL_RE = re.compile(
    r"""^(?:"[^"]*"|'[^']*'|0x[0-9A-Fa-f]+|-?\d+(?:\.\d+)?|true|false|null)$"""
)


def normalize_prop_type(type_text: str, optional: bool) -> PropType:
    """Map a TypeScript type annotation onto a closed PropType variant."""
    cleaned = normalize_type_text(type_text)
    members = [m.strip() for m in _split_top_level(cleaned, "|")]

    if len(members) > 1 and all(_LITERAL_RE.match(m) for m in members):
        literals = [m[1:-1] if m[:1] in "\"'" else m for m in members]
        return LiteralUnionType(literals=literals, optional=optional)

    if "=>" in cleaned and len(members) == 1:
        return FunctionType(signature=cleaned, optional=optional)

    if cleaned.startswith("{") and cleaned.endswith("}"):
        return ObjectType(shape=cleaned, optional=optional)

    if cleaned.endswith("[]") and len(members) == 1:
        return ArrayType(element=cleaned[:-2].strip(), optional=optional)

    array_match = re.fullmatch(r"Array<(.+)>", cleaned)
    if array_match:
        return ArrayType(element=array_match.group(1).strip(), optional=optional)

    return SimpleType(name=cleaned or "unknown", optional=optional)


def infer_literal_type(expression: str) -> str:
    """Best-effort type of an initializer expression."""
    value = expression.strip()
    if not value:
        return "undefined"
    if value[0] in "\"'`":
        return "string"
    if re.fullmatch(r"-?\d+(?:\.\d+)?", value):
        return "number"
    if value in ("true", "false"):
        return "boolean"
    if value == "null":
        return "null"
    if value.startswith("["):
        return "array"
    if value.startswith("{"):
        return "object"
    if value.startswith("(") or value.startswith("function") or "=>" in value:
        return "function"
    return "unknown"


# ===== Structural patterns =====

_IMPORT_RE = re.compile(
    r"""(?:^|[;\n])\s*(?:import|export)\s+(?:type\s+)?(?:[\w*\s{},$]+?\s+from\s+)?["']([^"']+)["']"""
)
_DYNAMIC_IMPORT_RE = re.compile(r"""\bimport\(\s*["']([^"']+)["']\s*\)""")
_HOOK_RE = re.compile(r"\b(use[A-Z]\w*)\s*(?:<[^>()]*>)?\s*\(")
_JSX_COMPONENT_RE = re.compile(r"<([A-Z][\w]*(?:\.[A-Z]?\w+)*)[\s/>]")
_FUNCTION_RE = re.compile(r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*([A-Za-z_$][\w$]*)", re.M)
_ARROW_RE = re.compile(
    r"^(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::[^=]+)?=\s*"
    r"(?:async\s+)?(?:\([^)]*\)|[A-Za-z_$][\w$]*)\s*(?::\s*[^=]+)?=>",
    re.M,
)
_WRAPPED_COMPONENT_RE = re.compile(
    r"^(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::[^=]+)?=\s*"
    r"(?:React\.)?(?:memo|forwardRef)\s*\(",
    re.M,
)
_VARIABLE_RE = re.compile(r"^(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)", re.M)
_EXPORT_DEFAULT_RE = re.compile(r"^\s*export\s+default\b", re.M)
_EXPORT_NAMED_RE = re.compile(
    r"^\s*export\s+(?:declare\s+)?(?:async\s+)?(?:const|let|var|function\*?|class|interface|type|enum)\s+([A-Za-z_$][\w$]*)",
    re.M,
)
_EXPORT_LIST_RE = re.compile(r"^\s*export\s+(?:type\s+)?\{([^}]*)\}", re.M)
_PROPS_DECL_RE = re.compile(
    r"\b(?:interface\s+([A-Za-z_$][\w$]*Props)\b[^{]*|type\s+([A-Za-z_$][\w$]*Props)\s*=\s*)\{"
)
_USE_STATE_RE = re.compile(
    r"\bconst\s*\[\s*([A-Za-z_$][\w$]*)\s*,\s*[A-Za-z_$][\w$]*\s*\]\s*=\s*"
    r"(?:React\.)?useState\s*(?:<(?P<generic>[^>]+(?:<[^>]*>)?)>)?\s*\((?P<init>[^;\n]*)\)"
)
_MEMBER_RE = re.compile(r"^\s*(?:readonly\s+)?([A-Za-z_$][\w$]*|\"[^\"]+\"|'[^']+')\s*(\?)?\s*(\(|:)")
_ROUTE_RE = re.compile(
    r"""\b(?:app|router|server)\.(get|post|put|patch|delete|options|head|all)\s*\(\s*["'`]([^"'`]+)["'`]"""
)
_CLASS_NAME_RE = re.compile(r"""className\s*=\s*(?:\{\s*)?["'`]([^"'`]+)["'`]""")
_MODULE_STYLE_RE = re.compile(r"""\.module\.(?:css|scss)$""")
_INLINE_STYLE_RE = re.compile(r"\bstyle\s*=\s*\{\{")

_TAILWIND_CATEGORIES: dict[str, tuple[str, ...]] = {
    "layout": ("flex", "grid", "block", "inline", "hidden", "container", "absolute", "relative", "fixed", "sticky", "items-", "justify-", "col-", "row-"),
    "spacing": ("p-", "px-", "py-", "pt-", "pb-", "pl-", "pr-", "m-", "mx-", "my-", "mt-", "mb-", "ml-", "mr-", "gap-", "space-"),
    "sizing": ("w-", "h-", "min-w-", "min-h-", "max-w-", "max-h-"),
    "typography": ("text-xs", "text-sm", "text-base", "text-lg", "text-xl", "text-2xl", "text-3xl", "font-", "leading-", "tracking-"),
    "colors": ("bg-", "text-", "border-", "from-", "to-", "via-", "fill-", "stroke-"),
    "borders": ("rounded", "border"),
    "effects": ("shadow", "opacity-", "transition", "duration-", "ease-", "animate-"),
}
_BREAKPOINTS = ("sm", "md", "lg", "xl", "2xl")


def _unique_sorted(values: list[str]) -> list[str]:
    return sorted(set(values))


def extract_imports(code: str) -> list[str]:
    """Import specifiers declared by a module (static, re-export and dynamic)."""
    specifiers = _IMPORT_RE.findall(code) + _DYNAMIC_IMPORT_RE.findall(code)
    return _unique_sorted(specifiers)


def extract_exports(code: str) -> ExportInfo:
    """Export kind plus named exports."""
    named = _EXPORT_NAMED_RE.findall(code)
    for group in _EXPORT_LIST_RE.findall(code):
        for item in group.split(","):
            name = item.strip().split(" as ")[-1].strip()
            if name and name != "default":
                named.append(name)

    if _EXPORT_DEFAULT_RE.search(code):
        kind = ExportKind.DEFAULT
    elif named:
        kind = ExportKind.NAMED
    else:
        kind = ExportKind.NONE
    return ExportInfo(kind=kind, named=_unique_sorted(named))


def _matching_brace(code: str, open_index: int) -> int:
    """Index of the brace closing the one at open_index, or -1."""
    depth = 0
    for index in range(open_index, len(code)):
        char = code[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _split_members(body: str) -> list[str]:
    """Split an object type body into member declarations."""
    segments: list[str] = []
    depth = 0
    current: list[str] = []
    for char in body:
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        if char in ";,\n" and depth == 0:
            segments.append("".join(current))
            current = []
            continue
        current.append(char)
    segments.append("".join(current))

    # Continuation lines of multi-line unions belong to the previous member
    members: list[str] = []
    for segment in segments:
        if not segment.strip():
            continue
        if _MEMBER_RE.match(segment) or not members:
            members.append(segment)
        else:
            members[-1] = f"{members[-1]} {segment}"
    return members


def extract_props(code: str) -> tuple[dict[str, PropType], dict[str, EventType]]:
    """Props and callback events declared by `*Props` interfaces/types."""
    props: dict[str, PropType] = {}
    emits: dict[str, EventType] = {}

    for match in _PROPS_DECL_RE.finditer(code):
        open_index = match.end() - 1
        close_index = _matching_brace(code, open_index)
        if close_index == -1:
            continue
        body = code[open_index + 1 : close_index]

        for member in _split_members(body):
            member_match = _MEMBER_RE.match(member)
            if not member_match:
                continue
            name = member_match.group(1).strip("\"'")
            optional = member_match.group(2) == "?"
            rest = member[member_match.end() - 1 :]

            if rest.startswith("("):
                # Method signature: onClick(event: E): void
                method = re.match(r"\((.*)\)\s*:\s*(.+)$", rest, re.DOTALL)
                params = method.group(1) if method else ""
                returns = method.group(2) if method else "void"
                prop_type: PropType = FunctionType(
                    signature=normalize_type_text(f"({params}) => {returns}"),
                    optional=optional,
                )
            else:
                prop_type = normalize_prop_type(rest[1:], optional)

            if name in props or name in emits:
                continue
            if re.match(r"^on[A-Z]", name) and isinstance(prop_type, FunctionType):
                emits[name] = prop_type
            else:
                props[name] = prop_type

    return props, emits


def extract_state(code: str) -> dict[str, StateType]:
    """State variables declared with useState."""
    state: dict[str, StateType] = {}
    for match in _USE_STATE_RE.finditer(code):
        name = match.group(1)
        generic = match.group("generic")
        type_name = (
            normalize_type_text(generic) if generic else infer_literal_type(match.group("init"))
        )
        state.setdefault(name, SimpleType(name=type_name))
    return state


def extract_version(code: str, imports: list[str]) -> VersionFingerprint:
    """Version fingerprint: imports, hooks, components, functions, variables."""
    declared = set(_FUNCTION_RE.findall(code)) | set(_ARROW_RE.findall(code))
    # A custom hook's own declaration is not a usage
    hooks = [h for h in _HOOK_RE.findall(code) if h not in declared]

    components = _JSX_COMPONENT_RE.findall(code)
    functions = list(declared | set(_WRAPPED_COMPONENT_RE.findall(code)))
    variables = [v for v in _VARIABLE_RE.findall(code) if v not in functions]

    return VersionFingerprint(
        imports=imports,
        hooks=_unique_sorted(hooks),
        components=_unique_sorted(components),
        functions=_unique_sorted(functions),
        variables=_unique_sorted(variables),
    )


def extract_style(code: str, imports: list[str]) -> StyleMetadata | None:
    """Tailwind class categories, CSS/SCSS module imports and inline styles."""
    categories: dict[str, set[str]] = {}
    breakpoints: set[str] = set()
    for class_list in _CLASS_NAME_RE.findall(code):
        for raw_class in class_list.split():
            parts = raw_class.split(":")
            utility = parts[-1]
            for prefix in parts[:-1]:
                if prefix in _BREAKPOINTS:
                    breakpoints.add(prefix)
            for category, prefixes in _TAILWIND_CATEGORIES.items():
                if utility.startswith(prefixes):
                    categories.setdefault(category, set()).add(utility)
                    break
    if breakpoints:
        categories["breakpoints"] = breakpoints

    css_modules = [spec for spec in imports if _MODULE_STYLE_RE.search(spec)]
    inline = bool(_INLINE_STYLE_RE.search(code))

    if not categories and not css_modules and not inline:
        return None
    return StyleMetadata(
        tailwind={key: sorted(values) for key, values in sorted(categories.items())},
        css_modules=sorted(css_modules),
        inline_styles=inline,
    )


def extract_backend(code: str, imports: list[str]) -> BackendMetadata | None:
    """Express-style route declarations."""
    routes = {(method.upper(), path) for method, path in _ROUTE_RE.findall(code)}
    if not routes:
        return None
    framework = "express" if any(spec == "express" for spec in imports) else "node"
    return BackendMetadata(
        framework=framework,
        routes=[RouteInfo(method=m, path=p) for m, p in sorted(routes)],
    )


def detect_kind(
    entry_id: str,
    code: str,
    version: VersionFingerprint,
    backend: BackendMetadata | None,
) -> ContractKind:
    """Classify a module as component, hook, API module or plain module."""
    if backend is not None:
        return ContractKind.API
    stem = posixpath.basename(entry_id).split(".")[0]
    if re.match(r"^use[A-Z]", stem) and stem in version.functions:
        return ContractKind.HOOK
    has_jsx = bool(_JSX_COMPONENT_RE.search(code)) or bool(re.search(r"return\s*\(?\s*<", code))
    if has_jsx and entry_id.endswith((".tsx", ".jsx")):
        return ContractKind.COMPONENT
    return ContractKind.MODULE


def infer_description(entry_id: str, kind: ContractKind, signature: LogicSignature) -> str:
    """Short human description from the file name and structure."""
    name = posixpath.basename(entry_id).split(".")[0] or "Component"
    lowered = name.lower()

    if kind == ContractKind.API:
        return f"{name} - API routes"
    if kind == ContractKind.HOOK:
        return f"{name} - Custom React hook"
    if kind == ContractKind.MODULE:
        if "util" in lowered or "helper" in lowered:
            return f"{name} - Utility module"
        if "config" in lowered:
            return f"{name} - Configuration module"
        if "type" in lowered or "interface" in lowered:
            return f"{name} - Type definitions"
        return f"{name} - TypeScript module"

    for keyword, label in (
        ("button", "Interactive button component"),
        ("form", "Form component"),
        ("modal", "Modal/dialog component"),
        ("dialog", "Modal/dialog component"),
        ("input", "Form input field"),
        ("card", "Card display component"),
        ("nav", "Navigation component"),
        ("menu", "Navigation component"),
    ):
        if keyword in lowered:
            return f"{name} - {label}"

    if signature.state and signature.emits:
        return f"{name} - Interactive component with internal state"
    if signature.state:
        return f"{name} - Stateful component"
    if signature.emits:
        return f"{name} - Interactive component"
    return f"{name} - Presentational component"


def build_contract(
    entry_id: str,
    contents: bytes | str,
    *,
    logic_signature: LogicSignature | None = None,
    exports: ExportInfo | None = None,
    version: VersionFingerprint | None = None,
    kind: ContractKind = ContractKind.MODULE,
    description: str = "",
    style: StyleMetadata | None = None,
    backend: BackendMetadata | None = None,
    snippet: str | None = None,
) -> Contract:
    """Assemble a Contract and compute both of its hashes.

    Args:
        entry_id: Entry id (normalized here)
        contents: Raw file contents, digested into file_hash
        logic_signature: Props/emits/state
        exports: Export metadata
        version: Version fingerprint

    Returns:
        A new Contract
    """
    logic_signature = logic_signature or LogicSignature()
    exports = exports or ExportInfo()
    version = version or VersionFingerprint()
    return Contract(
        kind=kind,
        entry_id=normalize_entry_id(entry_id),
        description=description,
        file_hash=file_hash(contents),
        semantic_hash=semantic_hash(logic_signature, exports, version),
        exports=exports,
        version=version,
        logic_signature=logic_signature,
        style=style,
        backend=backend,
        snippet=snippet,
    )


class ReactExtractor:
    """Default extractor for React/TypeScript component sources."""

    def __init__(self, include_code: CodeInclusion = "header", include_style: bool = False) -> None:
        self.include_code = include_code
        self.include_style = include_style

    def extract(self, entry_id: str, contents: bytes) -> Contract:
        """Extract a contract from one file's raw bytes."""
        try:
            source = contents.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionFailure(entry_id, f"not valid UTF-8 ({e.reason})") from e
        if "\x00" in source:
            raise ExtractionFailure(entry_id, "binary content")

        code = strip_comments(source)
        imports = extract_imports(code)
        props, emits = extract_props(code)
        signature = LogicSignature(props=props, emits=emits, state=extract_state(code))
        version = extract_version(code, imports)
        exports = extract_exports(code)
        backend = extract_backend(code, imports)
        kind = detect_kind(entry_id, code, version, backend)

        return build_contract(
            entry_id,
            contents,
            logic_signature=signature,
            exports=exports,
            version=version,
            kind=kind,
            description=infer_description(entry_id, kind, signature),
            style=extract_style(code, imports) if self.include_style else None,
            backend=backend,
            snippet=self._snippet(source),
        )

    def _snippet(self, source: str) -> str | None:
        if self.include_code == "full":
            return source
        if self.include_code == "header":
            match = _HEADER_RE.match(source)
            return match.group(1) if match else None
        return None
