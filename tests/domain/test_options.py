import io

import pytest

from kpm.domain.options import CompileOptions, CompilerOptions


def test_options_are_immutable():
    options = CompileOptions()
    with pytest.raises(AttributeError):
        options.vendor = True  # type: ignore[misc]


def test_with_helpers_return_new_instances():
    base = CompileOptions()
    updated = base.with_entries("main.k").with_vendor(True).with_no_sum_check(True)
    assert base.entries == ()
    assert updated.entries == ("main.k",)
    assert updated.vendor and updated.no_sum_check


def test_log_writer_can_be_disabled():
    buffer = io.StringIO()
    assert CompileOptions().with_log_writer(buffer).log_writer is buffer
    assert CompileOptions().with_log_writer(None).log_writer is None


def test_merge_appends_compiler_options():
    options = CompileOptions().merge(
        CompilerOptions(work_dir="/pkg", arguments=("-D", "a=1")),
        CompilerOptions(k_filenames=("x.k",), arguments=("--debug",)),
    )
    assert options.compiler.work_dir == "/pkg"
    assert options.compiler.k_filenames == ("x.k",)
    assert options.compiler.arguments == ("-D", "a=1", "--debug")


def test_settings_files_include_settings_path_once():
    options = CompileOptions().with_settings("kcl.yaml").merge(CompilerOptions(settings=("kcl.yaml", "b.yaml")))
    assert options.has_settings_yaml
    assert options.settings_files() == ("kcl.yaml", "b.yaml")
