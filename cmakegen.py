"""CMake project generator for resolved Swift package graphs.

Renders an already-resolved package graph (packages, targets, products and
their dependency edges) into a single CMakeLists.txt. Resolution is not done
here: the graph is read from a JSON description produced upstream.

Usage:
    python cmakegen.py --graph resolved-graph.json --output-dir build/spm
    python cmakegen.py --graph resolved-graph.json --scope deps
    python cmakegen.py --graph resolved-graph.json --list
"""

import argparse
import json
import os
import re
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePath

DEFAULT_GRAPH_FILE = Path("resolved-graph.json")
DEFAULT_OUTPUT_DIR = Path(".")
CMAKE_LISTS_FILENAME = "CMakeLists.txt"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    graph_file: Path
    output_dir: Path
    scope: str | None


@dataclass(frozen=True)
class DiscoveryConfig:
    graph_file: Path


VALID_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "INVALID_SCOPE",
    "CONFLICT_GENERATE_DISCOVERY",
}
_SCOPE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def validate_scope(scope: str) -> str:
    if _SCOPE_RE.match(scope):
        return scope
    raise ConfigError(
        "INVALID_SCOPE",
        f"Invalid scope name: {scope!r}",
        "Scopes start with a letter or underscore and may contain letters, digits, "
        "underscores, dots and hyphens, for example --scope deps or --scope my-deps.",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a CMakeLists.txt from a resolved Swift package graph"
    )

    parser.add_argument("--graph", type=Path, default=DEFAULT_GRAPH_FILE)
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("--scope", type=str, default=None)
    parser.add_argument("--list", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    if args.list and args.scope is not None:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "--scope cannot be combined with --list.",
            "Drop --scope to list the graph, or drop --list to generate.",
        )

    graph_file = validate_path_exists(
        args.graph,
        "--graph",
        "Export the resolved package graph as JSON first, then pass it with\n"
        "  --graph /path/to/resolved-graph.json",
    )

    if args.list:
        return DiscoveryConfig(graph_file=graph_file)

    scope = validate_scope(args.scope) if args.scope is not None else None
    return GenerateConfig(
        graph_file=graph_file,
        output_dir=args.output_dir,
        scope=scope,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Constants ---=== #

INDENT_WIDTH = 2

PRODUCT_PLACEHOLDER_SOURCE = "empty.swift"

SETTING_ACTIVE_COMPILATION_CONDITIONS = "SWIFT_ACTIVE_COMPILATION_CONDITIONS"
SETTING_LINK_LIBRARIES = "LINK_LIBRARIES"
SETTING_OTHER_SWIFT_FLAGS = "OTHER_SWIFT_FLAGS"

# Build-setting category -> directive head. Categories not listed are dropped.
BUILD_SETTING_DIRECTIVES: tuple[tuple[str, str], ...] = (
    (SETTING_ACTIVE_COMPILATION_CONDITIONS, "target_compile_definitions({name} PRIVATE"),
    (SETTING_LINK_LIBRARIES, "target_link_libraries({name} PUBLIC"),
    (SETTING_OTHER_SWIFT_FLAGS, "target_compile_options({name} PRIVATE"),
)

PLATFORM_FRAMEWORKS_OPTION = '"-F${CMAKE_OSX_SYSROOT}/../../Library/Frameworks"'
PLATFORM_LIBRARY_DIR = '"${CMAKE_OSX_SYSROOT}/../../usr/lib"'

CXX_STANDARD_VALUES = {
    "c++98": "98",
    "c++03": "98",
    "c++0x": "11",
    "c++11": "11",
    "c++1y": "14",
    "c++14": "14",
    "c++1z": "17",
    "c++17": "17",
    "c++2a": "20",
    "c++20": "20",
    "c++2b": "23",
    "c++23": "23",
    "c++2c": "26",
    "c++26": "26",
}

C_STANDARD_VALUES = {
    "c89": "90",
    "c90": "90",
    "iso9899:1990": "90",
    "iso9899:199409": "90",
    "c99": "99",
    "c9x": "99",
    "iso9899:1999": "99",
    "c11": "11",
    "c1x": "11",
    "iso9899:2011": "11",
    "c17": "17",
    "c18": "17",
    "iso9899:2017": "17",
    "iso9899:2018": "17",
    "c2x": "23",
    "c23": "23",
}


# ===--- Data model ---=== #


class TargetKind(Enum):
    LIBRARY = "library"
    EXECUTABLE = "executable"
    SYSTEM_LIBRARY = "system-library"


class TargetLanguage(Enum):
    SWIFT = "swift"
    CLANG = "clang"


class ProductKind(Enum):
    LIBRARY_DYNAMIC = "library-dynamic"
    LIBRARY_STATIC = "library-static"
    LIBRARY_AUTOMATIC = "library-automatic"
    EXECUTABLE = "executable"
    TEST = "test"
    PLUGIN = "plugin"
    MACRO = "macro"
    SNIPPET = "snippet"

    @property
    def is_library(self) -> bool:
        return self in (
            ProductKind.LIBRARY_DYNAMIC,
            ProductKind.LIBRARY_STATIC,
            ProductKind.LIBRARY_AUTOMATIC,
        )

    @property
    def is_rendered(self) -> bool:
        return self.is_library or self is ProductKind.EXECUTABLE


PLACEHOLDER_SOURCES = {
    TargetLanguage.SWIFT: "empty.swift",
    TargetLanguage.CLANG: "empty.c",
}

INTEROP_DEFINITIONS = {
    TargetLanguage.SWIFT: "SWIFT_PACKAGE",
    TargetLanguage.CLANG: "SWIFT_PACKAGE=1",
}


@dataclass(frozen=True)
class DependencyCondition:
    """Platform/configuration predicate attached to a dependency edge.

    Carried through from the graph description but never evaluated: every
    dependency is linked regardless of its condition.
    """

    platforms: tuple[str, ...] = ()
    configuration: str | None = None


class Target:
    def __init__(
        self,
        name: str,
        kind: TargetKind = TargetKind.LIBRARY,
        language: TargetLanguage = TargetLanguage.SWIFT,
        sources: Iterable[Path | str] = (),
        dependencies: Iterable["TargetRef | ProductRef"] = (),
        settings: dict[str, tuple[str, ...]] | None = None,
        include_dir: str | None = None,
        language_standard: str | None = None,
    ):
        if kind is TargetKind.SYSTEM_LIBRARY:
            if include_dir is None:
                raise ValueError(f"System library target '{name}' needs include_dir")
            language = TargetLanguage.CLANG
        self.name = name
        self.kind = kind
        self.language = language
        self.sources = tuple(Path(s) for s in sources)
        self.dependencies = tuple(dependencies)
        self.settings = dict(settings or {})
        self.include_dir = include_dir
        self.language_standard = language_standard

    @property
    def is_native(self) -> bool:
        return self.language is TargetLanguage.CLANG

    def __repr__(self) -> str:
        return f"Target({self.name!r}, {self.kind.value}, {self.language.value})"


class Product:
    def __init__(self, name: str, kind: ProductKind, targets: Iterable[Target] = ()):
        self.name = name
        self.kind = kind
        self.targets = tuple(targets)

    def __repr__(self) -> str:
        return f"Product({self.name!r}, {self.kind.value})"


@dataclass(frozen=True)
class TargetRef:
    target: Target
    condition: DependencyCondition | None = None


@dataclass(frozen=True)
class ProductRef:
    product: Product
    condition: DependencyCondition | None = None


@dataclass(frozen=True)
class Package:
    identity: str
    targets: tuple[Target, ...] = ()
    products: tuple[Product, ...] = ()


@dataclass(frozen=True)
class PackageGraph:
    packages: tuple[Package, ...]

    @property
    def target_count(self) -> int:
        return sum(len(p.targets) for p in self.packages)

    @property
    def product_count(self) -> int:
        return sum(len(p.products) for p in self.packages)


# ===--- Emitter ---=== #


class Emitter:
    """Append-only line accumulator with nested indentation blocks.

    Lines are recorded in call order and never reordered. `block()` raises
    the indent by one step for the duration of its body:

        out.emit("add_library(foo STATIC")
        with out.block():
            out.emit("a.swift")
        out.emit(")")
    """

    def __init__(self, indent_width: int = INDENT_WIDTH):
        self._indent = 0
        self._indent_width = indent_width
        self._lines: list[str] = []

    def emit(self, line: str) -> None:
        if not line:
            self._lines.append("")
            return
        self._lines.append(" " * (self._indent_width * self._indent) + line)

    @contextmanager
    def block(self) -> Iterator["Emitter"]:
        self._indent += 1
        try:
            yield self
        finally:
            self._indent -= 1

    def emit_block(self, fn: Callable[["Emitter"], None]) -> None:
        with self.block():
            fn(self)

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    @property
    def content(self) -> str:
        return "".join(f"{line}\n" for line in self._lines)


def emit_directive(out: Emitter, head: str, values: Iterable[str]) -> None:
    """Emit `head`, one nested line per value, then the closing parenthesis."""
    out.emit(head)
    with out.block():
        for value in values:
            out.emit(value)
    out.emit(")")


# ===--- Naming policy ---=== #


@dataclass(frozen=True)
class GenContext:
    """Per-run generation settings shared by every renderer.

    Attributes:
        root_path: Directory the CMakeLists.txt lives in. Source paths are
            emitted relative to it under ${CMAKE_CURRENT_LIST_DIR}.
        scope: Optional namespace. When set, every declared unit is named
            `<scope>-<name>` and libraries get a `<scope>::<name>` alias.
    """

    root_path: Path
    scope: str | None = None

    def scoped_name(self, name: str) -> str:
        if self.scope is not None:
            return f"{self.scope}-{name}"
        return name


def target_gen_name(identity: str, target_name: str) -> str:
    return f"{identity}__{target_name}"


def product_gen_name(product_name: str) -> str:
    return product_name


def module_name(name: str) -> str:
    return name.replace("-", "_")


def escape_source_path(path: str) -> str:
    return path.replace(" ", "\\ ").replace(">", "_")


def object_reference(name: str) -> str:
    return f"$<TARGET_OBJECTS:{name}>"


def relative_source_path(ctx: GenContext, path: Path | str) -> str:
    """Return `path` relative to the context root, with forward slashes.

    Raises:
        ValueError: If no relative path exists (e.g. different drives on Windows).
    """
    return PurePath(os.path.relpath(path, ctx.root_path)).as_posix()


def library_alias_line(ctx: GenContext, alias_name: str, unit_name: str) -> str | None:
    if ctx.scope is None:
        return None
    return f"add_library({ctx.scope}::{alias_name} ALIAS {unit_name})"


def _emit_library_alias(
    out: Emitter, ctx: GenContext, alias_name: str, unit_name: str
) -> None:
    line = library_alias_line(ctx, alias_name, unit_name)
    if line is not None:
        out.emit(line)


def _emit_module_name(out: Emitter, unit_name: str, name: str) -> None:
    emit_directive(
        out,
        f"set_target_properties({unit_name} PROPERTIES",
        [f"Swift_MODULE_NAME {module_name(name)}"],
    )


# ===--- Target renderer ---=== #


def translate_language_standard(standard: str) -> tuple[tuple[str, str], ...]:
    """Map a SwiftPM C/C++ language standard to CMake target properties.

    `gnu` dialects map to the same standard number with the matching
    `*_EXTENSIONS ON` property.

    Args:
        standard: Declared standard, e.g. "c++17", "gnu++14", "c11", "gnu99".

    Returns:
        Ordered (property, value) pairs, e.g. (("CXX_STANDARD", "17"),).

    Raises:
        ValueError: If the standard is not a known C or C++ dialect.
    """
    extensions = standard.startswith("gnu")
    iso = "c" + standard[3:] if extensions else standard

    if iso in CXX_STANDARD_VALUES:
        props = [("CXX_STANDARD", CXX_STANDARD_VALUES[iso])]
        if extensions:
            props.append(("CXX_EXTENSIONS", "ON"))
        return tuple(props)
    if iso in C_STANDARD_VALUES:
        props = [("C_STANDARD", C_STANDARD_VALUES[iso])]
        if extensions:
            props.append(("C_EXTENSIONS", "ON"))
        return tuple(props)
    raise ValueError(f"Unknown language standard: {standard!r}")


def dependency_targets(target: Target) -> Iterator[Target]:
    """Yield the targets a target depends on directly.

    Product dependencies contribute each of their member targets.
    """
    for dep in target.dependencies:
        if isinstance(dep, TargetRef):
            yield dep.target
        else:
            yield from dep.product.targets


def collect_native_include_dirs(target: Target) -> tuple[str, ...]:
    """Collect include dirs of C-family targets in a target's dependency closure.

    Worklist walk with a visited set, so cyclic graphs terminate. The target
    itself is not included.

    Args:
        target: Root of the walk, usually a Swift target.

    Returns:
        Sorted, de-duplicated include directory strings.
    """
    include_dirs: set[str] = set()
    visited: set[Target] = {target}
    worklist: list[Target] = list(dependency_targets(target))

    while worklist:
        current = worklist.pop()
        if current in visited:
            continue
        visited.add(current)
        if current.is_native and current.include_dir:
            include_dirs.add(current.include_dir)
        worklist.extend(dependency_targets(current))

    return tuple(sorted(include_dirs))


def dependency_reference(
    ctx: GenContext, identity: str, dep: TargetRef | ProductRef
) -> str:
    if isinstance(dep, TargetRef):
        name = ctx.scoped_name(target_gen_name(identity, dep.target.name))
        if dep.target.kind is TargetKind.EXECUTABLE:
            # executables only link as compiled objects
            return object_reference(name)
        return name
    return ctx.scoped_name(product_gen_name(dep.product.name))


def _render_system_library(
    out: Emitter, ctx: GenContext, target: Target, unit_name: str, alias: bool
) -> None:
    out.emit(f"add_library({unit_name} INTERFACE)")
    out.emit(f"target_include_directories({unit_name} INTERFACE {target.include_dir})")
    if alias:
        _emit_library_alias(out, ctx, target.name, unit_name)


def render_target(
    out: Emitter, ctx: GenContext, identity: str, target: Target, alias: bool = True
) -> None:
    """Render one target as a CMake unit.

    `alias` is cleared by render_package when a library product of the same
    package already owns the `<scope>::<target name>` alias.
    """
    unit_name = ctx.scoped_name(target_gen_name(identity, target.name))

    if target.kind is TargetKind.SYSTEM_LIBRARY:
        _render_system_library(out, ctx, target, unit_name, alias)
        return

    if target.kind is TargetKind.EXECUTABLE:
        out.emit(f"add_executable({unit_name}")
    else:
        out.emit(f"add_library({unit_name} STATIC")
    with out.block():
        if not target.sources:
            # CMake needs at least one source to pick the unit's language
            out.emit(PLACEHOLDER_SOURCES[target.language])
        for source in target.sources:
            src_path = escape_source_path(relative_source_path(ctx, source))
            out.emit(f"${{CMAKE_CURRENT_LIST_DIR}}/{src_path}")
    out.emit(")")

    out.emit(f"target_include_directories({unit_name} PUBLIC ${{CMAKE_CURRENT_BINARY_DIR}})")

    _emit_module_name(out, unit_name, target.name)
    if alias and target.kind is TargetKind.LIBRARY:
        _emit_library_alias(out, ctx, target.name, unit_name)

    out.emit(
        f"target_compile_definitions({unit_name} PRIVATE "
        f"{INTEROP_DEFINITIONS[target.language]})"
    )

    if target.is_native:
        if target.include_dir:
            out.emit(f"target_include_directories({unit_name} PUBLIC {target.include_dir})")
        if target.language_standard:
            props = translate_language_standard(target.language_standard)
            emit_directive(
                out,
                f"set_target_properties({unit_name} PROPERTIES",
                [f"{prop} {value}" for prop, value in props],
            )
    else:
        include_dirs = collect_native_include_dirs(target)
        if include_dirs:
            emit_directive(
                out,
                f"target_compile_options({unit_name} PRIVATE",
                [f'"SHELL:-Xcc -I{include_dir}"' for include_dir in include_dirs],
            )

    out.emit(f"target_compile_options({unit_name} PUBLIC {PLATFORM_FRAMEWORKS_OPTION})")
    out.emit(f"target_link_directories({unit_name} PUBLIC {PLATFORM_LIBRARY_DIR})")

    for setting, head in BUILD_SETTING_DIRECTIVES:
        values = target.settings.get(setting)
        if values:
            emit_directive(out, head.format(name=unit_name), values)

    if target.dependencies:
        emit_directive(
            out,
            f"target_link_libraries({unit_name} PRIVATE",
            [dependency_reference(ctx, identity, dep) for dep in target.dependencies],
        )


# ===--- Product renderer ---=== #


def product_member_references(
    ctx: GenContext, identity: str, product: Product, use_objects: bool = False
) -> list[str]:
    """Return link entries for a product's member targets, in member order.

    Members are referenced by their compiled objects when `use_objects` is
    set or when the member is an executable; otherwise by scoped name.
    System-library members have no objects and are left out in object mode.
    """
    refs: list[str] = []
    for target in product.targets:
        name = ctx.scoped_name(target_gen_name(identity, target.name))
        if use_objects and target.kind is TargetKind.SYSTEM_LIBRARY:
            continue
        if use_objects or target.kind is TargetKind.EXECUTABLE:
            refs.append(object_reference(name))
        else:
            refs.append(name)
    return refs


def render_product(
    out: Emitter, ctx: GenContext, identity: str, product: Product
) -> None:
    base_name = product_gen_name(product.name)
    unit_name = ctx.scoped_name(base_name)

    if product.kind is ProductKind.LIBRARY_DYNAMIC:
        emit_directive(
            out,
            f"add_library({unit_name} SHARED {PRODUCT_PLACEHOLDER_SOURCE}",
            product_member_references(ctx, identity, product, use_objects=True),
        )
        out.emit(f"target_include_directories({unit_name} PUBLIC ${{CMAKE_CURRENT_BINARY_DIR}})")
        _emit_module_name(out, unit_name, unit_name + "_product")
        _emit_library_alias(out, ctx, base_name, unit_name)

    elif product.kind.is_library:
        out.emit(f"add_library({unit_name} INTERFACE)")
        emit_directive(
            out,
            f"target_link_libraries({unit_name} INTERFACE",
            product_member_references(ctx, identity, product),
        )
        out.emit(f"target_include_directories({unit_name} INTERFACE ${{CMAKE_CURRENT_BINARY_DIR}})")
        _emit_library_alias(out, ctx, base_name, unit_name)

    elif product.kind is ProductKind.EXECUTABLE:
        emit_directive(
            out,
            f"add_executable({unit_name} {PRODUCT_PLACEHOLDER_SOURCE}",
            product_member_references(ctx, identity, product, use_objects=True),
        )
        out.emit(f"target_include_directories({unit_name} PUBLIC ${{CMAKE_CURRENT_BINARY_DIR}})")

    # tests, plugins, macros and snippets have no CMake counterpart


# ===--- Graph driver ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing the generated CMakeLists.txt.

    Attributes:
        filename: Filename written, always "CMakeLists.txt".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


def render_package(out: Emitter, ctx: GenContext, package: Package) -> None:
    product_aliases = {
        product_gen_name(p.name) for p in package.products if p.kind.is_library
    }
    for target in package.targets:
        render_target(
            out, ctx, package.identity, target, alias=target.name not in product_aliases
        )
    for product in package.products:
        render_product(out, ctx, package.identity, product)


def render_graph(graph: PackageGraph, ctx: GenContext) -> str:
    """Render every package of the graph, in graph order, to CMake source.

    Pure: the same graph and context always produce identical text.

    Args:
        graph: Fully resolved package graph.
        ctx: Generation context (root path and optional scope).

    Returns:
        Complete CMakeLists.txt content, newline-terminated per line.

    Raises:
        ValueError: Propagated from source path relativization or from an
            unknown C/C++ language standard.
    """
    out = Emitter()
    for package in graph.packages:
        render_package(out, ctx, package)
    return out.content


def write_cmake_lists(output_dir: Path, content: str) -> FileWriteResult:
    """Write content to <output_dir>/CMakeLists.txt, replacing any existing file.

    Creates output_dir (and missing parents) first.

    Raises:
        OSError: Propagated directly if the filesystem write fails.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path = output_dir / CMAKE_LISTS_FILENAME
    file_path.write_text(content, encoding="utf-8")
    resolved = file_path.resolve()
    return FileWriteResult(
        filename=CMAKE_LISTS_FILENAME,
        path=resolved,
        line_count=content.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


def generate(graph: PackageGraph, ctx: GenContext) -> FileWriteResult:
    """Render the graph and write it to <ctx.root_path>/CMakeLists.txt.

    The file always lands in the directory source paths were made relative
    to. Rendering completes before anything touches the filesystem, so a
    failure while rendering leaves no file behind.

    Args:
        graph: Fully resolved package graph.
        ctx: Generation context.

    Returns:
        FileWriteResult for the written file.
    """
    content = render_graph(graph, ctx)
    return write_cmake_lists(ctx.root_path, content)


# ===--- Graph description loader ---=== #

VALID_GRAPH_ERROR_CODES = {
    "MALFORMED_GRAPH",
    "UNKNOWN_KIND",
    "DUPLICATE_NAME",
    "UNRESOLVED_REFERENCE",
}


class GraphError(Exception):
    def __init__(self, code: str, message: str):
        if code not in VALID_GRAPH_ERROR_CODES:
            raise ValueError(f"Unknown graph error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message


def _require(entry: dict, key: str, expected: type, where: str):
    value = entry.get(key)
    if not isinstance(value, expected):
        raise GraphError(
            "MALFORMED_GRAPH",
            f"{where}: '{key}' must be a {expected.__name__}, got {type(value).__name__}",
        )
    return value


def _optional(entry: dict, key: str, expected: type, where: str, default=None):
    if entry.get(key) is None:
        return default
    return _require(entry, key, expected, where)


def _string_list(entry: dict, key: str, where: str) -> tuple[str, ...]:
    values = _optional(entry, key, list, where, default=[])
    for value in values:
        if not isinstance(value, str):
            raise GraphError(
                "MALFORMED_GRAPH", f"{where}: every '{key}' entry must be a string"
            )
    return tuple(values)


def _parse_kind(kind_type: type[Enum], raw: str, where: str):
    try:
        return kind_type(raw)
    except ValueError as err:
        allowed = ", ".join(k.value for k in kind_type)
        raise GraphError(
            "UNKNOWN_KIND", f"{where}: unknown type {raw!r} (expected one of: {allowed})"
        ) from err


def _parse_condition(entry: dict, where: str) -> DependencyCondition | None:
    raw = _optional(entry, "condition", dict, where)
    if raw is None:
        return None
    return DependencyCondition(
        platforms=_string_list(raw, "platforms", where),
        configuration=_optional(raw, "configuration", str, where),
    )


def _parse_settings(entry: dict, where: str) -> dict[str, tuple[str, ...]]:
    raw = _optional(entry, "settings", dict, where, default={})
    return {name: _string_list(raw, name, f"{where} setting") for name in raw}


def _parse_target(entry: dict, package_path: Path, where: str) -> Target:
    name = _require(entry, "name", str, where)
    where = f"{where} target '{name}'"
    kind = _parse_kind(TargetKind, _optional(entry, "type", str, where, "library"), where)
    language = _parse_kind(
        TargetLanguage, _optional(entry, "language", str, where, "swift"), where
    )
    include_dir = _optional(entry, "include_dir", str, where)
    if include_dir is not None:
        include_dir = str(package_path / include_dir)
    if kind is TargetKind.SYSTEM_LIBRARY and include_dir is None:
        raise GraphError(
            "MALFORMED_GRAPH", f"{where}: system-library targets need 'include_dir'"
        )

    return Target(
        name=name,
        kind=kind,
        language=language,
        sources=[package_path / src for src in _string_list(entry, "sources", where)],
        settings=_parse_settings(entry, where),
        include_dir=include_dir,
        language_standard=_optional(entry, "language_standard", str, where),
    )


def _index_unique(items: Iterable, where: str) -> dict:
    index: dict = {}
    for item in items:
        if item.name in index:
            raise GraphError("DUPLICATE_NAME", f"{where}: duplicate name '{item.name}'")
        index[item.name] = item
    return index


def parse_graph(data: object, base_dir: Path) -> PackageGraph:
    """Build a PackageGraph from a decoded JSON graph description.

    Two passes: every package's targets and products are created first, then
    target dependency edges are wired by name. This lets dependencies point at
    packages listed later in the file.

    Args:
        data: Decoded JSON document (a dict with a "packages" list).
        base_dir: Directory that relative package paths resolve against.

    Returns:
        PackageGraph with packages in document order.

    Raises:
        GraphError: On malformed structure, unknown kinds, duplicate names or
            dependency references that do not resolve within the graph.
    """
    if not isinstance(data, dict):
        raise GraphError("MALFORMED_GRAPH", "graph description must be a JSON object")
    raw_packages = _require(data, "packages", list, "graph")

    packages: list[Package] = []
    targets_by_package: dict[str, dict[str, Target]] = {}
    products_by_package: dict[str, dict[str, Product]] = {}
    pending_deps: list[tuple[str, Target, list]] = []

    for raw_pkg in raw_packages:
        if not isinstance(raw_pkg, dict):
            raise GraphError("MALFORMED_GRAPH", "graph: every package must be an object")
        identity = _require(raw_pkg, "identity", str, "package")
        where = f"package '{identity}'"
        if identity in targets_by_package:
            raise GraphError("DUPLICATE_NAME", f"graph: duplicate package '{identity}'")
        package_path = base_dir / _optional(raw_pkg, "path", str, where, ".")

        targets: list[Target] = []
        for raw_target in _optional(raw_pkg, "targets", list, where, default=[]):
            if not isinstance(raw_target, dict):
                raise GraphError("MALFORMED_GRAPH", f"{where}: every target must be an object")
            target = _parse_target(raw_target, package_path, where)
            targets.append(target)
            pending_deps.append(
                (identity, target, _optional(raw_target, "dependencies", list, where, []))
            )
        target_index = _index_unique(targets, where)

        products: list[Product] = []
        for raw_product in _optional(raw_pkg, "products", list, where, default=[]):
            if not isinstance(raw_product, dict):
                raise GraphError("MALFORMED_GRAPH", f"{where}: every product must be an object")
            name = _require(raw_product, "name", str, where)
            product_where = f"{where} product '{name}'"
            kind = _parse_kind(ProductKind, _require(raw_product, "type", str, product_where), product_where)
            members: list[Target] = []
            for member in _string_list(raw_product, "targets", product_where):
                if member not in target_index:
                    raise GraphError(
                        "UNRESOLVED_REFERENCE",
                        f"{product_where}: unknown member target '{member}'",
                    )
                members.append(target_index[member])
            products.append(Product(name=name, kind=kind, targets=members))

        targets_by_package[identity] = target_index
        products_by_package[identity] = _index_unique(products, where)
        packages.append(
            Package(identity=identity, targets=tuple(targets), products=tuple(products))
        )

    for identity, target, raw_deps in pending_deps:
        where = f"package '{identity}' target '{target.name}'"
        deps: list[TargetRef | ProductRef] = []
        for raw_dep in raw_deps:
            if not isinstance(raw_dep, dict):
                raise GraphError("MALFORMED_GRAPH", f"{where}: every dependency must be an object")
            condition = _parse_condition(raw_dep, where)
            if "target" in raw_dep:
                dep_name = _require(raw_dep, "target", str, where)
                dep_target = targets_by_package[identity].get(dep_name)
                if dep_target is None:
                    raise GraphError(
                        "UNRESOLVED_REFERENCE", f"{where}: unknown target '{dep_name}'"
                    )
                deps.append(TargetRef(dep_target, condition))
            elif "product" in raw_dep:
                dep_name = _require(raw_dep, "product", str, where)
                dep_pkg = _optional(raw_dep, "package", str, where, identity)
                dep_product = products_by_package.get(dep_pkg, {}).get(dep_name)
                if dep_product is None:
                    raise GraphError(
                        "UNRESOLVED_REFERENCE",
                        f"{where}: unknown product '{dep_name}' in package '{dep_pkg}'",
                    )
                deps.append(ProductRef(dep_product, condition))
            else:
                raise GraphError(
                    "MALFORMED_GRAPH",
                    f"{where}: dependency needs a 'target' or 'product' key",
                )
        target.dependencies = tuple(deps)

    return PackageGraph(packages=tuple(packages))


def load_graph(path: Path) -> PackageGraph:
    """Read and parse a JSON graph description file.

    Raises:
        OSError: The file cannot be read.
        GraphError: The file is not valid JSON or not a valid graph description.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as err:
        raise GraphError("MALFORMED_GRAPH", f"{path}: not valid UTF-8: {err}") from err
    except json.JSONDecodeError as err:
        raise GraphError("MALFORMED_GRAPH", f"{path}: invalid JSON: {err}") from err
    return parse_graph(data, path.resolve().parent)


# ===--- Discovery commands ---=== #


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def format_graph_listing(graph: PackageGraph) -> str:
    """Return the --list output for a resolved graph.

    Output format:

        Resolved graph: 1 package, 2 targets, 1 product

          app
            targets:
              core              library          swift    2 sources
              exe               executable       swift    1 source
            products:
              app-exe           executable       exe

    Products whose kind has no CMake counterpart are tagged "(skipped)".
    Returns a string with a trailing newline.
    """
    lines = [
        f"Resolved graph: {_plural(len(graph.packages), 'package')}, "
        f"{_plural(graph.target_count, 'target')}, "
        f"{_plural(graph.product_count, 'product')}",
    ]
    if graph.packages:
        lines.append("")
    for package in graph.packages:
        lines.append(f"  {package.identity}")
        if package.targets:
            lines.append("    targets:")
            for target in package.targets:
                lines.append(
                    f"      {target.name:<17} {target.kind.value:<16} "
                    f"{target.language.value:<8} {_plural(len(target.sources), 'source')}"
                )
        if package.products:
            lines.append("    products:")
            for product in package.products:
                members = ", ".join(t.name for t in product.targets)
                suffix = "" if product.kind.is_rendered else "  (skipped)"
                lines.append(
                    f"      {product.name:<17} {product.kind.value:<16} {members}{suffix}"
                )
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    graph = load_graph(config.graph_file)
    print(format_graph_listing(graph), end="")


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class KindCount:
    label: str
    count: int


@dataclass(frozen=True)
class GenerationSummary:
    """Immutable data for the post-generation console report.

    Attributes:
        graph_label: Graph description path as given on the command line.
        scope_label: Scope name, or "(none)".
        output_path: Absolute path of the written CMakeLists.txt.
        package_count: Number of packages rendered.
        target_kinds: Per-kind target counts, in TargetKind declaration order,
            zero counts omitted.
        product_kinds: Per-kind product counts for rendered products.
        skipped_products: Products with no CMake counterpart.
        line_count: Lines in the written file.
        byte_count: Bytes in the written file.
    """

    graph_label: str
    scope_label: str
    output_path: str
    package_count: int
    target_kinds: tuple[KindCount, ...]
    product_kinds: tuple[KindCount, ...]
    skipped_products: int
    line_count: int
    byte_count: int


def _count_kinds(kinds: list[Enum], order: Iterable[Enum]) -> tuple[KindCount, ...]:
    return tuple(
        KindCount(label=kind.value, count=kinds.count(kind))
        for kind in order
        if kind in kinds
    )


def build_generation_summary(
    config: GenerateConfig,
    graph: PackageGraph,
    write_result: FileWriteResult,
) -> GenerationSummary:
    target_kinds = [t.kind for p in graph.packages for t in p.targets]
    product_kinds = [pr.kind for p in graph.packages for pr in p.products]
    rendered = [kind for kind in product_kinds if kind.is_rendered]
    return GenerationSummary(
        graph_label=str(config.graph_file),
        scope_label=config.scope if config.scope is not None else "(none)",
        output_path=str(write_result.path),
        package_count=len(graph.packages),
        target_kinds=_count_kinds(target_kinds, TargetKind),
        product_kinds=_count_kinds(rendered, ProductKind),
        skipped_products=len(product_kinds) - len(rendered),
        line_count=write_result.line_count,
        byte_count=write_result.byte_count,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary as the multi-line console report.

    Kind breakdowns appear in parentheses only when non-empty; the skipped
    product note appears only when products were skipped. Returns a string
    with exactly one trailing newline.
    """

    def _breakdown(kinds: tuple[KindCount, ...]) -> str:
        if not kinds:
            return ""
        return "  (" + ", ".join(f"{k.count} {k.label}" for k in kinds) + ")"

    target_total = sum(k.count for k in summary.target_kinds)
    product_total = sum(k.count for k in summary.product_kinds)

    lines: list[str] = []
    lines.append(f"{CMAKE_LISTS_FILENAME} generated:")
    lines.append("")
    lines.append(f"  Graph:      {summary.graph_label}")
    lines.append(f"  Scope:      {summary.scope_label}")
    lines.append(f"  Output:     {summary.output_path}")
    lines.append("")
    lines.append(f"    {'Packages:':<11}{summary.package_count:>6}")
    lines.append(f"    {'Targets:':<11}{target_total:>6}{_breakdown(summary.target_kinds)}")
    lines.append(f"    {'Products:':<11}{product_total:>6}{_breakdown(summary.product_kinds)}")
    if summary.skipped_products:
        lines.append(f"    {'Skipped:':<11}{summary.skipped_products:>6}  (no CMake counterpart)")
    lines.append("")
    lines.append(f"  Total: {summary.line_count:,} lines, {summary.byte_count:,} bytes")
    lines.append("")

    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Main generation ---=== #


def run_generate(config: GenerateConfig) -> FileWriteResult:
    """Execute load -> render -> write -> summary for a GenerateConfig.

    Raises:
        OSError: Graph file not readable or filesystem write failure.
        GraphError: Malformed graph description.
        ValueError: Source path relativization or language standard failure.
    """
    print(f"Loading: {config.graph_file}")
    graph = load_graph(config.graph_file)
    print(
        f"  Graph: {_plural(len(graph.packages), 'package')}, "
        f"{_plural(graph.target_count, 'target')}, "
        f"{_plural(graph.product_count, 'product')}"
    )

    ctx = GenContext(root_path=Path(config.output_dir).resolve(), scope=config.scope)
    result = generate(graph, ctx)
    print(f"  Rendered: {result.line_count} lines")
    print(f"  Written: {result.path}")

    print_generation_summary(build_generation_summary(config, graph, result))
    return result


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        else:
            run_generate(config)
    except GraphError as err:
        print(f"Graph error [{err.code}]: {err.message}")
        raise SystemExit(1) from err
    except OSError as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except ValueError as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
