import argparse
import json
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import cmakegen  # noqa: E402


@pytest.fixture
def root_path(tmp_path: Path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def make_ctx(root_path: Path) -> Callable[..., cmakegen.GenContext]:
    def _make_ctx(scope: str | None = None) -> cmakegen.GenContext:
        return cmakegen.GenContext(root_path=root_path, scope=scope)

    return _make_ctx


@pytest.fixture
def make_target(root_path: Path) -> Callable[..., cmakegen.Target]:
    """Build a Target whose relative sources sit under <root_path>/Sources/<name>."""

    def _make_target(
        name: str,
        *,
        kind: cmakegen.TargetKind = cmakegen.TargetKind.LIBRARY,
        language: cmakegen.TargetLanguage = cmakegen.TargetLanguage.SWIFT,
        sources: tuple[str, ...] = (),
        dependencies: tuple[object, ...] = (),
        settings: dict[str, tuple[str, ...]] | None = None,
        include_dir: str | None = None,
        language_standard: str | None = None,
    ) -> cmakegen.Target:
        return cmakegen.Target(
            name=name,
            kind=kind,
            language=language,
            sources=[root_path / "Sources" / name / src for src in sources],
            dependencies=dependencies,
            settings=settings,
            include_dir=include_dir,
            language_standard=language_standard,
        )

    return _make_target


@pytest.fixture
def app_graph(
    make_target: Callable[..., cmakegen.Target],
) -> cmakegen.PackageGraph:
    core = make_target("core", sources=("a.swift", "b.swift"))
    exe = make_target(
        "exe",
        kind=cmakegen.TargetKind.EXECUTABLE,
        sources=("main.swift",),
        dependencies=(cmakegen.TargetRef(core),),
    )
    product = cmakegen.Product("app-exe", cmakegen.ProductKind.EXECUTABLE, [exe])
    package = cmakegen.Package(identity="app", targets=(core, exe), products=(product,))
    return cmakegen.PackageGraph(packages=(package,))


@pytest.fixture
def write_graph_file(tmp_path: Path) -> Callable[[object], Path]:
    def _write_graph_file(data: object) -> Path:
        path = tmp_path / "graph.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write_graph_file


@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    graph = tmp_path / "resolved-graph.json"
    graph.write_text('{"packages": []}\n', encoding="utf-8")
    return {
        "graph": graph,
        "output_dir": tmp_path / "build",
    }


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "graph": existing_paths["graph"],
            "output_dir": existing_paths["output_dir"],
            "scope": None,
            "list": False,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args
