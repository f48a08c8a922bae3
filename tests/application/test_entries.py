import pytest

from kpm.application.entries import resolve_entries, resolve_entry
from kpm.domain.errors import PathNotFoundError


def test_absolute_entry(tmp_path):
    entry = tmp_path / "main.k"
    entry.write_text("a = 1\n")
    assert resolve_entry(tmp_path / "elsewhere", str(entry)) == entry


def test_package_relative_entry_wins_over_cwd(tmp_path, monkeypatch):
    package = tmp_path / "pkg"
    package.mkdir()
    (package / "main.k").write_text("a = 1\n")
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    (cwd / "main.k").write_text("a = 2\n")
    monkeypatch.chdir(cwd)
    assert resolve_entry(package, "main.k") == package.absolute() / "main.k"


def test_cwd_relative_entry(tmp_path, monkeypatch):
    package = tmp_path / "pkg"
    package.mkdir()
    (tmp_path / "other.k").write_text("a = 1\n")
    monkeypatch.chdir(tmp_path)
    assert resolve_entry(package, "other.k") == tmp_path / "other.k"


def test_missing_entry_names_attempted_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(PathNotFoundError) as excinfo:
        resolve_entry(tmp_path / "pkg", "invalid_name.k")
    assert str(excinfo.value) == (
        f"Cannot find the kcl file, please check the file path {tmp_path / 'invalid_name.k'}"
    )
    assert excinfo.value.details["entry"] == "invalid_name.k"


def test_missing_absolute_entry(tmp_path):
    missing = tmp_path / "gone.k"
    with pytest.raises(PathNotFoundError) as excinfo:
        resolve_entry(tmp_path, str(missing))
    assert str(missing) in str(excinfo.value)


def test_resolve_entries_keeps_order(tmp_path):
    for name in ("b.k", "a.k"):
        (tmp_path / name).write_text("")
    assert resolve_entries(tmp_path, ["b.k", "a.k"]) == [tmp_path / "b.k", tmp_path / "a.k"]
