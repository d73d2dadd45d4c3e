from collections.abc import Callable
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

import cmakegen


def _assert_config_code(exc_info: pytest.ExceptionInfo[Exception], code: str) -> None:
    err = exc_info.value
    assert getattr(err, "code") == code
    assert getattr(err, "code") in cmakegen.VALID_ERROR_CODES


def test_import_cmakegen_module_smoke() -> None:
    assert callable(cmakegen.main)


def test_build_argument_parser_exposes_surface_and_defaults() -> None:
    parser = cmakegen.build_argument_parser()
    option_actions = {
        option: action for action in parser._actions for option in action.option_strings
    }

    assert {"--graph", "--output-dir", "--scope", "--list"}.issubset(option_actions.keys())
    assert option_actions["--graph"].default == cmakegen.DEFAULT_GRAPH_FILE
    assert option_actions["--output-dir"].default == cmakegen.DEFAULT_OUTPUT_DIR
    assert option_actions["--scope"].default is None
    assert option_actions["--list"].default is False


def test_parse_args_maps_valid_argv_without_semantic_validation(
    existing_paths: dict[str, Path],
) -> None:
    args = cmakegen.parse_args(
        ["--graph", str(existing_paths["graph"]), "--scope", "not valid!"]
    )

    assert isinstance(args.graph, Path)
    assert args.graph == existing_paths["graph"]
    assert args.scope == "not valid!"


def test_parse_args_unknown_flag_exits_with_code_2() -> None:
    with pytest.raises(SystemExit) as exc_info:
        cmakegen.parse_args(["--not-a-flag"])

    assert exc_info.value.code == 2


def test_validate_config_generate_mode_returns_generate_config(
    make_args: Callable[..., object], existing_paths: dict[str, Path]
) -> None:
    config = cmakegen.validate_config(make_args(scope="deps"))

    assert config == cmakegen.GenerateConfig(
        graph_file=existing_paths["graph"],
        output_dir=existing_paths["output_dir"],
        scope="deps",
    )


def test_validate_config_list_mode_returns_discovery_config(
    make_args: Callable[..., object], existing_paths: dict[str, Path]
) -> None:
    config = cmakegen.validate_config(make_args(list=True))

    assert config == cmakegen.DiscoveryConfig(graph_file=existing_paths["graph"])


def test_validate_config_missing_graph_raises_path_not_found(
    make_args: Callable[..., object], tmp_path: Path
) -> None:
    with pytest.raises(cmakegen.ConfigError) as exc_info:
        cmakegen.validate_config(make_args(graph=tmp_path / "missing.json"))

    _assert_config_code(exc_info, "PATH_NOT_FOUND")
    assert "--graph" in exc_info.value.message
    assert "--graph" in (exc_info.value.suggestion or "")


def test_validate_config_output_dir_need_not_exist(
    make_args: Callable[..., object], tmp_path: Path
) -> None:
    config = cmakegen.validate_config(make_args(output_dir=tmp_path / "later"))

    assert isinstance(config, cmakegen.GenerateConfig)
    assert not (tmp_path / "later").exists()


@pytest.mark.parametrize("scope", ["", "ns::x", "1abc", "-deps", "with space", "a/b"])
def test_validate_config_rejects_invalid_scope(
    scope: str, make_args: Callable[..., object]
) -> None:
    with pytest.raises(cmakegen.ConfigError) as exc_info:
        cmakegen.validate_config(make_args(scope=scope))

    _assert_config_code(exc_info, "INVALID_SCOPE")


@pytest.mark.parametrize("scope", ["deps", "Vendor_1", "_x", "my-deps", "vendor.v2"])
def test_validate_scope_accepts_cmake_name_characters(scope: str) -> None:
    assert cmakegen.validate_scope(scope) == scope


def test_validate_config_list_with_scope_conflicts(
    make_args: Callable[..., object],
) -> None:
    with pytest.raises(cmakegen.ConfigError) as exc_info:
        cmakegen.validate_config(make_args(list=True, scope="deps"))

    _assert_config_code(exc_info, "CONFLICT_GENERATE_DISCOVERY")


def test_config_error_rejects_unknown_code() -> None:
    with pytest.raises(ValueError):
        cmakegen.ConfigError("NOT_A_CODE", "message")


def test_config_dataclasses_are_frozen(existing_paths: dict[str, Path]) -> None:
    config = cmakegen.GenerateConfig(
        graph_file=existing_paths["graph"],
        output_dir=existing_paths["output_dir"],
        scope=None,
    )

    with pytest.raises(FrozenInstanceError):
        config.scope = "x"  # type: ignore[misc]


def test_build_config_end_to_end(existing_paths: dict[str, Path]) -> None:
    config = cmakegen.build_config(
        [
            "--graph",
            str(existing_paths["graph"]),
            "--output-dir",
            str(existing_paths["output_dir"]),
        ]
    )

    assert isinstance(config, cmakegen.GenerateConfig)
    assert config.scope is None


def test_main_maps_config_errors_to_exit_1_with_hint(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    err = cmakegen.ConfigError("INVALID_SCOPE", "Invalid scope name: 'ns::x'", "Use --scope deps.")

    def _raise(_argv: object = None) -> object:
        raise err

    monkeypatch.setattr(cmakegen, "build_config", _raise)

    with pytest.raises(SystemExit) as exc_info:
        cmakegen.main()

    output = capsys.readouterr().out
    assert exc_info.value.code == 1
    assert "Config error [INVALID_SCOPE]: Invalid scope name: 'ns::x'" in output
    assert "Hint: Use --scope deps." in output


@pytest.mark.parametrize(
    ("error", "expected_text"),
    [
        (OSError("disk full"), "Error: disk full"),
        (cmakegen.GraphError("UNRESOLVED_REFERENCE", "unknown target 'x'"),
         "Graph error [UNRESOLVED_REFERENCE]: unknown target 'x'"),
        (ValueError("Unknown language standard: 'c++99'"), "Internal error:"),
    ],
)
def test_main_maps_run_errors_to_exit_1(
    error: Exception,
    expected_text: str,
    make_args: Callable[..., object],
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = cmakegen.validate_config(make_args())
    monkeypatch.setattr(cmakegen, "build_config", lambda _argv=None: config)

    def _raise(_cfg: object) -> object:
        raise error

    monkeypatch.setattr(cmakegen, "run_generate", _raise)

    with pytest.raises(SystemExit) as exc_info:
        cmakegen.main()

    assert exc_info.value.code == 1
    assert expected_text in capsys.readouterr().out


def test_main_dispatches_list_to_discovery(
    make_args: Callable[..., object],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    config = cmakegen.validate_config(make_args(list=True))
    calls: list[object] = []
    monkeypatch.setattr(cmakegen, "build_config", lambda _argv=None: config)
    monkeypatch.setattr(cmakegen, "run_discovery", calls.append)
    monkeypatch.setattr(
        cmakegen,
        "run_generate",
        lambda _cfg: pytest.fail("--list must not generate"),
    )

    cmakegen.main()

    assert calls == [config]
