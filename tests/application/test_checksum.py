import os

import pytest

from kpm.application.checksum import tree_checksum, verify_checksum
from kpm.domain.errors import ChecksumMismatchError


def _tree(root):
    (root / "sub").mkdir(parents=True)
    (root / "main.k").write_text("a = 1\n")
    (root / "sub" / "lib.k").write_text("b = 2\n")
    return root


def test_checksum_is_stable_across_copies(tmp_path):
    first = _tree(tmp_path / "first")
    second = tmp_path / "second"
    (second / "sub").mkdir(parents=True)
    (second / "sub" / "lib.k").write_text("b = 2\n")
    (second / "main.k").write_text("a = 1\n")
    assert tree_checksum(first) == tree_checksum(second)


def test_checksum_tracks_content_and_names(tmp_path):
    root = _tree(tmp_path / "pkg")
    original = tree_checksum(root)
    (root / "main.k").write_text("a = 2\n")
    changed = tree_checksum(root)
    assert changed != original
    (root / "main.k").rename(root / "other.k")
    assert tree_checksum(root) != changed


def test_checksum_ignores_git_metadata(tmp_path):
    root = _tree(tmp_path / "pkg")
    original = tree_checksum(root)
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    assert tree_checksum(root) == original


def test_checksum_hashes_symlink_targets(tmp_path):
    root = _tree(tmp_path / "pkg")
    os.symlink("main.k", root / "alias.k")
    linked = tree_checksum(root)
    (root / "alias.k").unlink()
    os.symlink("sub/lib.k", root / "alias.k")
    assert tree_checksum(root) != linked


def test_verify_checksum_mismatch(tmp_path):
    root = _tree(tmp_path / "pkg")
    with pytest.raises(ChecksumMismatchError) as excinfo:
        verify_checksum("helloworld", "oci", root, "bm90LXRoZS1zdW0=")
    error = excinfo.value
    assert error.details["dependency"] == "helloworld"
    assert error.details["expected"] == "bm90LXRoZS1zdW0="
    assert error.details["actual"] == tree_checksum(root)
    assert verify_checksum("helloworld", "oci", root, tree_checksum(root)) == tree_checksum(root)
