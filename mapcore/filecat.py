"""Concatenate the text files under a directory tree into one file."""

from __future__ import annotations

import collections
import os
import re
import sys
from typing import Iterator, Optional, Sequence

SAMPLE_BYTES = 128


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def _iter_files(root: str) -> Iterator[str]:
    """Yield every non-directory entry, one directory level after another."""
    pending = collections.deque([os.fspath(root)])
    while pending:
        directory = pending.popleft()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError:
            continue
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                pending.append(entry.path)
            else:
                yield entry.path


def _read_text(path: str) -> Optional[bytes]:
    """Return the file's contents, or None if unreadable or apparently binary."""
    try:
        with open(path, "rb") as fp:
            sample = fp.read(SAMPLE_BYTES)
            if b"\0" in sample:
                return None
            return sample + fp.read()
    except OSError:
        return None


def iter_text_files(root: str) -> Iterator[str]:
    """Yield readable files under root with no NUL byte in their first 128 bytes."""
    for path in _iter_files(root):
        if _read_text(path) is not None:
            yield path


def merge_files(
    root: str, output: str, nfiles: int = 0, max_bytes: Optional[int] = None
) -> int:
    """Write the text files under root into output and return the bytes written.

    Stops once more than max_bytes have been written, or after nfiles files
    have been visited (binary and empty files count; 0 means no limit).
    """
    total = 0
    visited = 0
    with open(output, "wb") as out:
        for path in _iter_files(root):
            data = _read_text(path)
            if data:
                out.write(data)
                total += len(data)
            if max_bytes is not None and total > max_bytes:
                break
            visited += 1
            if visited == nfiles:
                break
    return total


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command line: <input dir> <output file> <nfiles> <nsize MB>."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 4:
        print("Usage: filecat <input dir> <output file> <nfiles> <nsize MB>")
        return 0
    nfiles = _atoi(args[2])
    nsize = _atoi(args[3]) * 1024 * 1024
    merge_files(args[0], args[1], nfiles, nsize)
    return 0


if __name__ == "__main__":
    sys.exit(main())