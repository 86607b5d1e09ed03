"""Utilities for working with files."""

from __future__ import annotations

import os
import shutil
import tempfile
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


tempfiles: list[str] = []
tempdirs: list[str] = []


def cleanup_tempfiles() -> None:
    """Clean up temporary files which have been created."""
    for tmpfile in tempfiles:
        try:
            os.unlink(tmpfile)
        except OSError:
            pass

    for tmpdir in tempdirs:
        shutil.rmtree(tmpdir, ignore_errors=True)

    del tempfiles[:]
    del tempdirs[:]


def make_tempfile(
    *,
    content: (bytes | None) = None,
    prefix: str = 'cleartrack.',
    suffix: (str | None) = None,
) -> str:
    """Create a temporary file and return the path.

    If not manually removed, then the resulting temp file will be removed
    when :py:func:`cleanup_tempfiles` is called.

    Args:
        content (bytes, optional):
            The content for the file.

        prefix (str, optional):
            The prefix for the temp filename.

        suffix (str, optional):
            The suffix for the temp filename.

    Returns:
        str:
        The temp file path.
    """
    with tempfile.NamedTemporaryFile(prefix=prefix,
                                     suffix=suffix or '',
                                     delete=False) as fp:
        tmpfile = fp.name

        if content:
            fp.write(content)

    tempfiles.append(tmpfile)

    return tmpfile


def make_tempdir(
    parent: (str | None) = None,
    track: bool = True,
) -> str:
    """Create a temporary directory and return the path.

    By default, the path will be stored in a list for cleanup when calling
    :py:func:`cleanup_tempfiles`.

    Args:
        parent (str, optional):
            An optional parent directory to create the path in.

        track (bool, optional):
            Whether to track the directory for later cleanup.

    Returns:
        str:
        The name of the new temporary directory.
    """
    tmpdir = tempfile.mkdtemp(prefix='cleartrack.',
                              dir=parent)

    if track:
        tempdirs.append(tmpdir)

    return tmpdir


def delete_file(
    path: str,
) -> None:
    """Delete a file if it exists.

    Args:
        path (str):
            The file to delete.
    """
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def walk_parents(
    path: str,
) -> Iterable[str]:
    """Walk up the tree to the root directory.

    Yields:
        str:
        Each directory name while walking up to the root.
    """
    while os.path.splitdrive(path)[1] != os.sep:
        yield path

        path = os.path.dirname(path)


def get_home_path() -> str:
    """Return the path to the home directory.

    Returns:
        str:
        The user's home directory (or general place to store application data).
    """
    if 'HOME' in os.environ:
        return os.environ['HOME']
    elif 'APPDATA' in os.environ:
        return os.environ['APPDATA']
    else:
        return ''

