"""Parsing and mapping of ClearCase paths.

A path in a view may select explicit versions of any of its elements
using ClearCase's version-extended naming, such as
``/view/vobs/proj@@/main/4/src/a.txt@@/main/2``. The functions here convert
between such raw paths and lists of :py:class:`PathElement`, and map paths
between the view and the repository-relative form used for changes.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from cleartrack.errors import InternalError
from cleartrack.utils.filesystem import walk_parents


logger = logging.getLogger(__name__)


#: The separator between an element name and a version.
VERSION_SEPARATOR = '@@'

#: The name of the directory that holds VOB tags on UNIX views.
VOBS_DIR = 'vobs'

#: The file marking the root of a snapshot view.
VIEW_MARKER_FILE = 'view.dat'

#: The final component of a version: a numeric ordinal or a checkout.
ORDINAL_RE = re.compile(r'^(?:\d+|CHECKEDOUT(?:\.\d+)?)$')


@dataclass(frozen=True)
class PathElement:
    """One component of a path, optionally selecting a version."""

    #: The name of the element.
    #:
    #: Type:
    #:     str
    name: str

    #: The selected version, such as ``/main/3``.
    #:
    #: This is ``None`` when the element has no ``@@``, and an empty string
    #: when ``@@`` is present but no version follows.
    #:
    #: Type:
    #:     str
    version: Optional[str] = None

    def __str__(self) -> str:
        if self.version is None:
            return self.name

        return '%s%s%s' % (self.name, VERSION_SEPARATOR, self.version)


def split_path(
    raw: str,
    sep: str = os.sep,
) -> List[PathElement]:
    """Split a raw path into elements.

    After an ``@@``, components belong to the version up to and including
    the first one that is a version ordinal (a number or ``CHECKEDOUT``).
    If there isn't one, the element gets an empty version slot and the
    following components are treated as plain elements.

    Args:
        raw (str):
            The path to split.

        sep (str, optional):
            The path separator.

    Returns:
        list of PathElement:
        The elements of the path, in order.
    """
    tokens = raw.split(sep)
    elements: List[PathElement] = []
    i = 0

    while i < len(tokens):
        token = tokens[i]
        i += 1

        if VERSION_SEPARATOR not in token:
            elements.append(PathElement(token))
            continue

        name, rest = token.split(VERSION_SEPARATOR, 1)
        candidates = [rest] + tokens[i:]

        for end, candidate in enumerate(candidates):
            if ORDINAL_RE.match(candidate):
                elements.append(PathElement(
                    name,
                    sep.join(candidates[:end + 1])))
                i += end
                break
        else:
            elements.append(PathElement(name, rest))

    return elements


def join_path(
    elements: Sequence[PathElement],
    sep: str = os.sep,
) -> str:
    """Join elements back into a raw path.

    This is the inverse of :py:func:`split_path`.

    Args:
        elements (list of PathElement):
            The elements to join.

        sep (str, optional):
            The path separator.

    Returns:
        str:
        The raw path.
    """
    return sep.join(
        str(element)
        for element in elements
    )


def _split_prefix(
    raw: str,
    prefix: Optional[str],
    case_insensitive: bool = False,
) -> Tuple[str, str]:
    if prefix:
        if case_insensitive:
            matches = raw.lower().startswith(prefix.lower())
        else:
            matches = raw.startswith(prefix)

        if matches:
            return raw[:len(prefix)], raw[len(prefix):]

    return '', raw


def replace_last_version(
    raw: str,
    view_path: Optional[str],
    new_version: Optional[str] = None,
    sep: str = os.sep,
) -> str:
    """Replace or remove the version of the final element of a path.

    The view path prefix is kept as-is, as are the versions of all
    intermediate elements.

    Args:
        raw (str):
            The path.

        view_path (str):
            The path of the view the path is in.

        new_version (str, optional):
            The new version, or ``None`` to remove the version.

        sep (str, optional):
            The path separator.

    Returns:
        str:
        The new path.
    """
    prefix, rest = _split_prefix(raw, view_path)
    elements = split_path(rest, sep)

    for index in range(len(elements) - 1, -1, -1):
        if elements[index].name:
            elements[index] = PathElement(elements[index].name, new_version)
            break

    return prefix + join_path(elements, sep)


def strip_versions(
    raw: str,
    sep: str = os.sep,
) -> str:
    """Return a path with every version selection removed."""
    return join_path(
        [
            PathElement(element.name)
            for element in split_path(raw, sep)
        ],
        sep)


def split_last_version(
    raw: str,
    sep: str = os.sep,
) -> Tuple[str, Optional[str]]:
    """Split the version of the final element off a path.

    Args:
        raw (str):
            The path, such as ``src/a.txt@@/main/2``.

        sep (str, optional):
            The path separator.

    Returns:
        tuple:
        A 2-tuple of the path without the final version, and that version
        (or ``None`` if it had none).
    """
    elements = split_path(raw, sep)

    if not elements:
        return raw, None

    last = elements[-1]
    elements[-1] = PathElement(last.name)

    return join_path(elements, sep), last.version


def cut_off_vobs_dir(
    path: str,
) -> str:
    """Remove a leading ``vobs/`` from a relative path, ignoring case."""
    if path[:len(VOBS_DIR) + 1].lower() == VOBS_DIR + '/':
        path = path[len(VOBS_DIR) + 1:]

    return path


def relativise(
    view_path: str,
    raw: str,
    case_insensitive: bool = False,
    sep: str = os.sep,
) -> str:
    """Return a path relative to a view path.

    Args:
        view_path (str):
            The view path that ``raw`` is inside.

        raw (str):
            The full path.

        case_insensitive (bool, optional):
            Whether the path comparison ignores case.

        sep (str, optional):
            The path separator.

    Returns:
        str:
        The relative path, using ``/`` as separator.

    Raises:
        cleartrack.errors.InternalError:
            The path is not inside the view path.
    """
    view_path = view_path.rstrip(sep)

    if not view_path:
        return raw.lstrip(sep).replace(sep, '/')

    prefix, rest = _split_prefix(raw, view_path, case_insensitive)

    if not prefix or (rest and not rest.startswith(sep)):
        raise InternalError('"%s" is not inside "%s"' % (raw, view_path))

    return rest.lstrip(sep).replace(sep, '/')


def is_ancestor(
    parent: str,
    path: str,
) -> bool:
    """Return whether a relative path is, or is below, another.

    Both paths use ``/`` as separator. Case is ignored.
    """
    parent = parent.lower()
    path = path.lower()

    return not parent or parent == path or path.startswith(parent + '/')


def find_view_root(
    path: str,
) -> Optional[str]:
    """Return the root of the snapshot view containing a path.

    Args:
        path (str):
            A path inside a view.

    Returns:
        str:
        The view root, or ``None`` if no view marker file was found.
    """
    for parent in walk_parents(os.path.abspath(path)):
        if os.path.exists(os.path.join(parent, VIEW_MARKER_FILE)):
            return parent

    return None


def map_full_path(
    view_path: str,
    view_root: str,
    full_path: str,
) -> List[str]:
    """Map a repository path to a path relative to a view path.

    Both the repository path and the location of the view path inside
    the view are compared without any ``vobs/`` prefix.

    Args:
        view_path (str):
            The view path configured for a root.

        view_root (str):
            The root of the view containing ``view_path``.

        full_path (str):
            The repository path to map, such as ``/vobs/proj/src/a.txt``.

    Returns:
        list of str:
        A list with the path relative to ``view_path``, or an empty list if
        the path isn't inside it.
    """
    try:
        server_path = cut_off_vobs_dir(relativise(view_root, view_path,
                                                  case_insensitive=True))
    except InternalError:
        logger.debug('%s is not inside view %s', view_path, view_root)
        return []

    norm_path = cut_off_vobs_dir(full_path.replace('\\', '/').lstrip('/'))

    if not is_ancestor(server_path, norm_path):
        logger.debug('%s is not under %s', norm_path, server_path)
        return []

    return [norm_path[len(server_path):].lstrip('/')]


def vob_tag(
    view_root: str,
    path: str,
    sep: str = os.sep,
) -> str:
    """Return the VOB tag holding a path in a view.

    Args:
        view_root (str):
            The root of the view.

        path (str):
            A full path inside the view.

        sep (str, optional):
            The path separator.

    Returns:
        str:
        The VOB tag, relative to the view root (such as ``vobs/proj``).
    """
    parts = relativise(view_root, strip_versions(path, sep),
                       sep=sep).split('/')

    if len(parts) > 1 and parts[0].lower() == VOBS_DIR:
        return '/'.join(parts[:2])

    return parts[0]
