import os

import pytest

from mapcore.filecat import iter_text_files, main, merge_files


@pytest.fixture
def tree(tmp_path):
    root = tmp_path / "tree"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha")
    (root / "b.txt").write_bytes(b"beta")
    (root / "bin.dat").write_bytes(b"\x00\x01\x02")
    (root / "sub" / "c.txt").write_bytes(b"gamma")
    return root


def test_iter_text_files_skips_binary(tree):
    found = [os.path.relpath(p, tree) for p in iter_text_files(str(tree))]
    assert found == ["a.txt", "b.txt", os.path.join("sub", "c.txt")]


def test_merge_all(tree, tmp_path):
    out = tmp_path / "out.bin"
    total = merge_files(str(tree), str(out))
    assert out.read_bytes() == b"alphabetagamma"
    assert total == len(out.read_bytes())


@pytest.mark.parametrize(
    "nfiles, expected",
    [(1, b"alpha"), (2, b"alphabeta"), (3, b"alphabeta"), (4, b"alphabetagamma")],
)
def test_merge_file_limit_counts_binary(tree, tmp_path, nfiles, expected):
    out = tmp_path / "out.bin"
    merge_files(str(tree), str(out), nfiles)
    assert out.read_bytes() == expected


def test_merge_size_limit(tree, tmp_path):
    out = tmp_path / "out.bin"
    total = merge_files(str(tree), str(out), 0, 0)
    assert out.read_bytes() == b"alpha"
    assert total == len(b"alpha")


def test_merge_missing_root(tmp_path):
    out = tmp_path / "out.bin"
    assert merge_files(str(tmp_path / "absent"), str(out)) == 0
    assert out.read_bytes() == b""


def test_main_usage(capsys):
    assert main(["only", "two"]) == 0
    assert "Usage" in capsys.readouterr().out


def test_main_merges(tree, tmp_path):
    out = tmp_path / "out.bin"
    assert main([str(tree), str(out), "0", "1"]) == 0
    assert out.read_bytes() == b"alphabetagamma"