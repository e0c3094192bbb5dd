"""
AST-queryable view of a JS/TS source tree.

Files are parsed eagerly with tree-sitter so later symbol resolution never
has to rescan the disk. Import specifiers are resolved relative to the
importing file and, when a tsconfig/jsconfig is present, through its
`baseUrl` and `paths` aliases.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Optional

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser, Tree

from routewise.logs import LoggerLike, resolve_logger
from routewise.repo.scanner import (
    SOURCE_EXTENSIONS,
    read_source,
    read_sources,
    resolve_repo_root,
    scan_source_files,
)
from routewise.syntax.nodes import (
    first_child_of_type,
    iter_descendants,
    named_children_of_type,
    node_text,
    string_value,
)

TS_LANGUAGE = Language(tstypescript.language_typescript())
TSX_LANGUAGE = Language(tstypescript.language_tsx())

# .js/.jsx may contain JSX, which only the TSX grammar accepts
_TS_ONLY_SUFFIXES = (".ts", ".mts", ".cts")

_MODULE_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")

_parsers: dict[str, Parser] = {}


def _parser_for(path: Path) -> Parser:
    key = "ts" if path.suffix in _TS_ONLY_SUFFIXES else "tsx"
    parser = _parsers.get(key)
    if parser is None:
        parser = Parser(TS_LANGUAGE if key == "ts" else TSX_LANGUAGE)
        _parsers[key] = parser
    return parser


@dataclass(eq=False)
class SourceFile:
    path: Path
    source: bytes
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def text(self) -> str:
        return self.source.decode("utf-8", errors="replace")

    @property
    def has_errors(self) -> bool:
        return self.tree.root_node.has_error

    def relative_to(self, root: Path) -> str:
        try:
            return self.path.relative_to(root).as_posix()
        except ValueError:
            return self.path.as_posix()


def parse_source(path: Path, source: bytes) -> SourceFile:
    return SourceFile(path=path, source=source, tree=_parser_for(path).parse(source))


@dataclass(frozen=True)
class Declaration:
    """
    One binding of a name: a variable declarator, a function/class, an
    `export default <expr>` statement, or an import binding.
    """

    kind: str  # variable | function | class | default-export | import
    node: Node
    file: SourceFile
    name: str
    imported_name: Optional[str] = None  # imports only: exported name, "default" or "*"
    module: Optional[str] = None  # imports only: the module specifier

    @property
    def key(self) -> tuple[str, int, int, str]:
        return (str(self.file.path), self.node.start_byte, self.node.end_byte, self.name)

    @property
    def value(self) -> Optional[Node]:
        if self.kind == "variable":
            return self.node.child_by_field_name("value")
        if self.kind == "default-export":
            return self.node.child_by_field_name("value")
        if self.kind in ("function", "class"):
            return self.node
        return None


# ----------------------------
# Compiler configuration
# ----------------------------


@dataclass(frozen=True)
class CompilerConfig:
    base_url: Optional[Path] = None
    paths: dict[str, list[str]] = field(default_factory=dict)
    source: Optional[Path] = None


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments from JSON-like text."""
    out: list[str] = []
    in_str = False
    escape = False
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if in_str:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            idx += 1
            continue
        if ch == '"':
            in_str = True
            out.append(ch)
            idx += 1
            continue
        if ch == "/" and idx + 1 < len(text):
            nxt = text[idx + 1]
            if nxt == "/":
                idx = text.find("\n", idx + 2)
                if idx == -1:
                    break
                continue
            if nxt == "*":
                end = text.find("*/", idx + 2)
                if end == -1:
                    break
                idx = end + 2
                continue
        out.append(ch)
        idx += 1
    return "".join(out)


def _read_jsonc(path: Path) -> Optional[dict]:
    raw = path.read_text(encoding="utf-8")
    payload = json.loads(_TRAILING_COMMA.sub(r"\1", strip_json_comments(raw)))
    return payload if isinstance(payload, dict) else None


def load_compiler_config(root: Path, logger: Optional[LoggerLike] = None) -> CompilerConfig:
    """
    baseUrl/paths from tsconfig.json or jsconfig.json, following relative
    `extends`. A missing or broken config yields the default (relative-only
    resolution).
    """
    log = resolve_logger(logger)
    for name in ("tsconfig.json", "jsconfig.json"):
        path = root / name
        if not path.is_file():
            continue

        compiler: dict = {}
        base_dir = path.parent
        seen: set[Path] = set()
        current: Optional[Path] = path
        # child options override inherited ones, so walk child -> parent and keep the first hit
        while current is not None and current not in seen:
            seen.add(current)
            try:
                payload = _read_jsonc(current)
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
                log.debug("Failed to parse %s: %s", current, exc)
                break
            if payload is None:
                break
            options = payload.get("compilerOptions")
            if isinstance(options, dict):
                for key in ("baseUrl", "paths"):
                    if key in options and key not in compiler:
                        compiler[key] = options[key]
                        if key == "baseUrl":
                            base_dir = current.parent
            parent = payload.get("extends")
            here = current.parent
            current = None
            if isinstance(parent, str) and parent.startswith("."):
                # relative to the file that declares it
                target = (here / parent).resolve()
                if target.suffix != ".json":
                    target = target.with_name(target.name + ".json")
                current = target

        base_url = compiler.get("baseUrl")
        paths: dict[str, list[str]] = {}
        raw_paths = compiler.get("paths")
        if isinstance(raw_paths, dict):
            for key, value in raw_paths.items():
                if isinstance(value, str):
                    paths[str(key)] = [value]
                elif isinstance(value, list):
                    paths[str(key)] = [v for v in value if isinstance(v, str)]

        resolved_base = (base_dir / base_url).resolve() if isinstance(base_url, str) else None
        log.debug("Using %s (baseUrl=%s, %d path aliases)", path, resolved_base, len(paths))
        return CompilerConfig(base_url=resolved_base, paths=paths, source=path)

    log.debug("No tsconfig.json found, using default compiler options")
    return CompilerConfig()


# ----------------------------
# Project
# ----------------------------


class Project:
    """Parsed source files of one root directory. Read-only once loaded."""

    def __init__(self, root: Path, compiler: Optional[CompilerConfig] = None, logger: Optional[LoggerLike] = None):
        self.root = root.resolve()
        self.compiler = compiler or CompilerConfig()
        self.logger = resolve_logger(logger)
        self.files: dict[Path, SourceFile] = {}

    @classmethod
    def load(
        cls,
        root: Path,
        max_files: int | None = None,
        logger: Optional[LoggerLike] = None,
    ) -> "Project":
        root = resolve_repo_root(root)

        log = resolve_logger(logger)
        project = cls(root, load_compiler_config(root, log), log)
        paths = scan_source_files(project.root, max_files=max_files)
        for p, data in read_sources(paths).items():
            if data is None:
                log.debug("Skipping unreadable file %s", p)
                continue
            project._register(Path(p), data)
        log.debug("Loaded %d source files from %s", len(project.files), project.root)
        return project

    @classmethod
    def from_sources(cls, root: Path, sources: dict[str, str], logger: Optional[LoggerLike] = None) -> "Project":
        """In-memory project, keyed by paths relative to root. Handy for tests and editors."""
        project = cls(Path(root), logger=logger)
        for rel, text in sources.items():
            project._register(project.root / rel, text.encode("utf-8"))
        return project

    def _register(self, path: Path, data: bytes) -> SourceFile:
        sf = parse_source(path, data)
        if sf.has_errors:
            self.logger.debug("Syntax errors in %s; extracting what parsed", path)
        self.files[path] = sf
        return sf

    def __iter__(self) -> Iterator[SourceFile]:
        return iter(self.files.values())

    def __len__(self) -> int:
        return len(self.files)

    def relative(self, sf: SourceFile) -> str:
        return sf.relative_to(self.root)

    # ---- get or load ----

    def get_file(self, path: Path | str) -> Optional[SourceFile]:
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        p = Path(os.path.normpath(p))
        sf = self.files.get(p)
        if sf is not None:
            return sf
        return self.add_file(p)

    def add_file(self, path: Path) -> Optional[SourceFile]:
        if not path.is_file():
            return None
        data = read_source(str(path))
        if data is None:
            self.logger.debug("Could not read %s", path)
            return None
        return self._register(path, data)

    # ---- queries ----

    def find_calls(self, sf: SourceFile, predicate: Callable[[Node], bool]) -> list[Node]:
        return [n for n in iter_descendants(sf.root) if n.type == "call_expression" and predicate(n)]

    def resolve_module(self, importer: SourceFile, specifier: str) -> Optional[SourceFile]:
        if not specifier:
            return None
        if specifier.startswith("."):
            return self._try_module(importer.path.parent / specifier)

        for candidate in self._alias_candidates(specifier):
            found = self._try_module(candidate)
            if found is not None:
                return found
        return None

    def _alias_candidates(self, specifier: str) -> list[Path]:
        base = self.compiler.base_url or self.root
        out: list[Path] = []
        for pattern, targets in self.compiler.paths.items():
            if "*" in pattern:
                prefix, suffix = pattern.split("*", 1)
                if not (specifier.startswith(prefix) and specifier.endswith(suffix)):
                    continue
                token = specifier[len(prefix) : len(specifier) - len(suffix)]
                out.extend(base / t.replace("*", token) for t in targets)
            elif specifier == pattern:
                out.extend(base / t for t in targets)
        if self.compiler.base_url is not None:
            out.append(self.compiler.base_url / specifier)
        return out

    def _try_module(self, target: Path) -> Optional[SourceFile]:
        target = Path(os.path.normpath(target))
        if target.suffix in _MODULE_EXTENSIONS:
            sf = self.get_file(target)
            if sf is not None:
                return sf
            # ESM sources import "./x.js" while the file on disk is x.ts
            stem = target.with_suffix("")
        else:
            stem = target
        for ext in _MODULE_EXTENSIONS:
            sf = self.get_file(stem.with_name(stem.name + ext))
            if sf is not None:
                return sf
        for ext in _MODULE_EXTENSIONS:
            sf = self.get_file(stem / f"index{ext}")
            if sf is not None:
                return sf
        return None

    # ---- declarations ----

    def scope_declarations(self, sf: SourceFile, scope: Node, name: str) -> list[Declaration]:
        out: list[Declaration] = []
        for stmt in scope.named_children:
            target = stmt
            if stmt.type == "export_statement":
                target = stmt.child_by_field_name("declaration")
                if target is None:
                    continue
            out.extend(_declarations_in_statement(sf, target, name))
        return out

    def module_declarations(self, sf: SourceFile, name: str) -> list[Declaration]:
        return self.scope_declarations(sf, sf.root, name)

    def exported_declarations(
        self,
        sf: SourceFile,
        name: str,
        _seen: Optional[set[tuple[str, str]]] = None,
    ) -> list[Declaration]:
        """
        Declarations exported from `sf` under `name` ("default" for the
        default export), following `export {a as b}`, `export {a} from`,
        and `export * from`. Re-export cycles are cut by `_seen`.
        """
        seen = _seen if _seen is not None else set()
        key = (str(sf.path), name)
        if key in seen:
            return []
        seen.add(key)

        out: list[Declaration] = []
        for stmt in named_children_of_type(sf.root, "export_statement"):
            is_default = first_child_of_type(stmt, "default") is not None
            decl = stmt.child_by_field_name("declaration")
            value = stmt.child_by_field_name("value")
            source = stmt.child_by_field_name("source")

            if is_default:
                if name != "default":
                    continue
                if value is not None and value.type == "identifier":
                    out.extend(self.module_declarations(sf, node_text(value)))
                elif value is not None:
                    out.append(Declaration("default-export", stmt, sf, "default"))
                elif decl is not None:
                    out.extend(_declarations_in_statement(sf, decl, None, as_name="default"))
                continue

            if decl is not None:
                out.extend(_declarations_in_statement(sf, decl, name))
                continue

            clause = first_child_of_type(stmt, "export_clause")
            if clause is not None:
                for specifier in named_children_of_type(clause, "export_specifier"):
                    local = specifier.child_by_field_name("name")
                    alias = specifier.child_by_field_name("alias")
                    exported = node_text(alias if alias is not None else local)
                    if exported != name:
                        continue
                    local_name = node_text(local)
                    if source is not None:
                        target = self.resolve_module(sf, string_value(source) or "")
                        if target is not None:
                            out.extend(self.exported_declarations(target, local_name, seen))
                    else:
                        out.extend(self.module_declarations(sf, local_name))
                continue

            # export * from './x' (but not `export * as ns from`)
            if source is not None and name != "default" and first_child_of_type(stmt, "namespace_export") is None:
                target = self.resolve_module(sf, string_value(source) or "")
                if target is not None:
                    out.extend(self.exported_declarations(target, name, seen))
        return out


def _declarations_in_statement(
    sf: SourceFile,
    stmt: Node,
    name: Optional[str],
    as_name: Optional[str] = None,
) -> list[Declaration]:
    """Bindings introduced by one statement; `name=None` accepts any name (used for `export default function`)."""
    out: list[Declaration] = []
    if stmt.type in ("lexical_declaration", "variable_declaration"):
        for d in named_children_of_type(stmt, "variable_declarator"):
            ident = d.child_by_field_name("name")
            if ident is None or ident.type != "identifier":
                continue
            if name is None or node_text(ident) == name:
                out.append(Declaration("variable", d, sf, as_name or node_text(ident)))
    elif stmt.type in (
        "function_declaration",
        "generator_function_declaration",
        "class_declaration",
        "abstract_class_declaration",
    ):
        ident = stmt.child_by_field_name("name")
        kind = "class" if "class" in stmt.type else "function"
        if name is None or (ident is not None and node_text(ident) == name):
            out.append(Declaration(kind, stmt, sf, as_name or node_text(ident)))
    elif stmt.type == "import_statement" and name is not None:
        out.extend(_import_bindings(sf, stmt, name))
    return out


def _import_bindings(sf: SourceFile, stmt: Node, name: str) -> list[Declaration]:
    module = string_value(stmt.child_by_field_name("source")) or ""
    clause = first_child_of_type(stmt, "import_clause")
    if clause is None:
        return []
    out: list[Declaration] = []
    for child in clause.named_children:
        if child.type == "identifier" and node_text(child) == name:
            out.append(Declaration("import", stmt, sf, name, imported_name="default", module=module))
        elif child.type == "namespace_import":
            ident = first_child_of_type(child, "identifier")
            if ident is not None and node_text(ident) == name:
                out.append(Declaration("import", stmt, sf, name, imported_name="*", module=module))
        elif child.type == "named_imports":
            for specifier in named_children_of_type(child, "import_specifier"):
                imported = specifier.child_by_field_name("name")
                alias = specifier.child_by_field_name("alias")
                local = alias if alias is not None else imported
                if node_text(local) == name:
                    out.append(
                        Declaration("import", specifier, sf, name, imported_name=node_text(imported), module=module)
                    )
    return out
