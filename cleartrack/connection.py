"""Connections to ClearCase views."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from cleartrack.cache import (KIND_LAST_VERSION,
                              KIND_LISTING,
                              StructureCache)
from cleartrack.config_spec import ConfigSpec
from cleartrack.errors import (ExternalCommandFailedError,
                               InternalError,
                               ViewUnreadableError)
from cleartrack.gateway import ClearTool
from cleartrack.paths import (VERSION_SEPARATOR,
                              cut_off_vobs_dir,
                              relativise,
                              replace_last_version,
                              split_path,
                              strip_versions,
                              vob_tag)
from cleartrack.utils.dates import format_date, parse_date
from cleartrack.utils.filesystem import delete_file, make_tempfile
from cleartrack.version_tree import (VERSION_TREE_FORMAT,
                                     Version,
                                     VersionTree)


logger = logging.getLogger(__name__)


#: Element types whose versions are stored as text.
TEXT_ELEMENT_TYPES = frozenset((
    'text_file',
    'compressed_text_file',
    'utf8_text_file',
    'utf16le_text_file',
    'utf16be_text_file',
    'html',
    'xml',
    'ms_word',
))

_LS_LINE_RE = re.compile(
    r'^(?P<kind>directory version|version)\s+(?P<path>.+?)'
    r'(?:\s+Rule:\s.*)?\s*$')

_ELEMENT_TYPE_RE = re.compile(r'^\s*element type:\s*(\S+)', re.MULTILINE)

_PROTECTION_RE = re.compile(
    r'^\s*(?:User|Group|Other)\s*:.*:\s*([r-][w-][x-])\s*$',
    re.MULTILINE)


class ChildKind(str, Enum):
    """The kind of an entry in a directory."""

    #: A file element.
    FILE = 'file'

    #: A directory element.
    DIR = 'dir'


@dataclass(frozen=True)
class DirectoryChildElement:
    """An entry in a listing of a directory version."""

    #: The path of the entry in the view, without any versions.
    #:
    #: Type:
    #:     str
    path_without_version: str

    #: The version of the entry the listing showed.
    #:
    #: Type:
    #:     str
    string_version: str

    #: The kind of entry.
    #:
    #: Type:
    #:     ChildKind
    type: ChildKind

    @property
    def full_path(self) -> str:
        """The path of the entry, selecting its version.

        Type:
            str
        """
        return '%s%s%s' % (self.path_without_version, VERSION_SEPARATOR,
                           self.string_version)

    @property
    def name(self) -> str:
        """The name of the entry.

        Type:
            str
        """
        return os.path.basename(self.path_without_version)

    @property
    def is_file(self) -> bool:
        return self.type == ChildKind.FILE

    def serialize(self) -> Dict[str, str]:
        return {
            'path': self.path_without_version,
            'version': self.string_version,
            'type': self.type.value,
        }

    @classmethod
    def deserialize(
        cls,
        data: Dict[str, str],
    ) -> DirectoryChildElement:
        return cls(path_without_version=data['path'],
                   string_version=data['version'],
                   type=ChildKind(data['type']))


@dataclass(frozen=True)
class FileAttributes:
    """Attributes of a file version that affect how it's checked out."""

    #: Whether the file is stored as text.
    #:
    #: Type:
    #:     bool
    is_text: bool

    #: Whether the file is executable.
    #:
    #: Type:
    #:     bool
    is_executable: bool


@dataclass(frozen=True)
class VersionEntry:
    """An element version selected by the view."""

    #: The full path of the element in the view.
    #:
    #: Type:
    #:     str
    full_path: str

    #: The selected version.
    #:
    #: Type:
    #:     cleartrack.version_tree.Version
    version: Version

    #: Whether the element is a file.
    #:
    #: Type:
    #:     bool
    is_file: bool


class Connection:
    """A connection to a ClearCase view.

    A connection lives for the duration of a single request. It knows the
    view's root, its config spec and whether it's dynamic, and owns a
    temporary file used to fetch file contents. It must be disposed of
    once done, which is taken care of when used as a context manager.
    """

    ######################
    # Instance variables #
    ######################

    #: The structure cache, if caching is enabled.
    cache: Optional[StructureCache]

    #: Whether paths are compared without regard to case.
    case_insensitive: bool

    #: The cleartool gateway.
    clear_tool: ClearTool

    #: The parsed config spec of the view.
    config_spec: ConfigSpec

    #: The text of the config spec of the view.
    config_spec_text: str

    #: Whether the view is a dynamic view.
    is_dynamic: bool

    #: Whether the root uses UCM activities.
    is_ucm: bool

    #: The time the view is being evaluated at, once prepared.
    target_date: Optional[datetime]

    #: The root of the view.
    view_root: str

    #: The path inside the view being tracked.
    view_path: str

    def __init__(
        self,
        view_path: str,
        *,
        clear_tool: ClearTool,
        is_ucm: bool = True,
        cache: Optional[StructureCache] = None,
        case_insensitive: Optional[bool] = None,
    ) -> None:
        """Initialize the connection.

        Args:
            view_path (str):
                The path inside the view being tracked.

            clear_tool (cleartrack.gateway.ClearTool):
                The cleartool gateway.

            is_ucm (bool, optional):
                Whether the root uses UCM activities.

            cache (cleartrack.cache.StructureCache, optional):
                The structure cache.

            case_insensitive (bool, optional):
                Whether paths are compared without regard to case. This
                defaults to ``True`` on Windows.

        Raises:
            cleartrack.errors.ViewUnreadableError:
                The view path is missing or not inside a view.

            cleartrack.errors.ExternalCommandFailedError:
                The view's properties couldn't be read.
        """
        if case_insensitive is None:
            case_insensitive = sys.platform.startswith('win')

        if len(view_path) > 1:
            view_path = view_path.rstrip('/\\')

        if not os.path.isdir(view_path):
            raise ViewUnreadableError(view_path,
                                      'the directory does not exist')

        self.view_path = view_path
        self.clear_tool = clear_tool
        self.is_ucm = is_ucm
        self.cache = cache
        self.case_insensitive = case_insensitive
        self.target_date = None

        self._tmpfile: Optional[str] = None
        self._trees: Dict[str, VersionTree] = {}
        self._ignored: Dict[Tuple[str, str], bool] = {}

        self.view_root = self._read_view_root()
        self.is_dynamic = self._read_is_dynamic()
        self.config_spec_text = self.clear_tool.execute_text(
            ['catcs'], cwd=self.view_path)
        self.config_spec = ConfigSpec.parse(self.config_spec_text,
                                            case_insensitive=case_insensitive)
        self.config_spec.set_view_is_dynamic(self.is_dynamic)
        self._config_spec_digest = hashlib.sha1(
            self.config_spec_text.encode('utf-8')).hexdigest()

        logger.debug('Connected to %s view %s (root %s)',
                     'dynamic' if self.is_dynamic else 'snapshot',
                     self.view_path, self.view_root)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *args) -> None:
        self.dispose()

    def dispose(self) -> None:
        """Release the resources held by the connection."""
        if self._tmpfile:
            delete_file(self._tmpfile)
            self._tmpfile = None

    def _read_view_root(self) -> str:
        try:
            view_root = self.clear_tool.execute_text(
                ['pwv', '-root'],
                cwd=self.view_path).strip()
        except ExternalCommandFailedError as e:
            raise ViewUnreadableError(self.view_path, str(e)) from e

        if not view_root or view_root.startswith('** NONE'):
            raise ViewUnreadableError(self.view_path,
                                      'no view root was reported')

        return view_root

    def _read_is_dynamic(self) -> bool:
        output = self.clear_tool.execute_text(
            ['lsview', '-cview', '-properties', '-full'],
            cwd=self.view_path)

        for line in output.splitlines():
            line = line.strip()

            if line.startswith('Properties:'):
                return 'dynamic' in line[len('Properties:'):].split()

        return False

    def prepare(
        self,
        version: str,
    ) -> None:
        """Set the time the view is evaluated at.

        Versions created after this time are not selected, and are
        reported as ignored by :py:meth:`is_ignored`.

        Args:
            version (str):
                The version string of the time.

        Raises:
            cleartrack.errors.InternalError:
                The version string is not valid.
        """
        try:
            self.target_date = parse_date(version)
        except ValueError as e:
            raise InternalError('"%s" is not a valid version: %s'
                                % (version, e)) from e

        self._ignored.clear()

    def collect_changes_to_ignore(
        self,
        version: str,
    ) -> None:
        """Prepare to tell which history records fall outside the view.

        Args:
            version (str):
                The version changes are being collected up to.
        """
        logger.debug('Collecting changes to ignore up to %s', version)
        self.prepare(version)

    def config_spec_changed(self) -> bool:
        """Return whether the config spec changed since it was last stored.

        Without a cache, or without a stored config spec, the config spec is
        considered unchanged.

        Returns:
            bool:
            ``True`` if the stored config spec differs from the current one.
        """
        if self.cache is None:
            return False

        snapshot = self.cache.get_config_spec_snapshot(self.view_path)

        return snapshot is not None and snapshot != self.config_spec_text

    def store_config_spec(self) -> None:
        """Store the current config spec for later change detection."""
        if self.cache is not None:
            self.cache.store_config_spec_snapshot(self.view_path,
                                                  self.config_spec_text)

    def relative_path(
        self,
        full_path: str,
    ) -> str:
        """Return the path of an element relative to the view path.

        Versions are removed, separators become ``/`` and a leading
        ``vobs/`` is removed.

        Args:
            full_path (str):
                The full path of the element.

        Returns:
            str:
            The relative path.
        """
        return cut_off_vobs_dir(relativise(self.view_path,
                                           strip_versions(full_path),
                                           self.case_insensitive))

    def relative_path_with_version(
        self,
        full_path: str,
        version: Optional[str],
    ) -> Optional[str]:
        """Return the relative path of an element, selecting a version.

        Args:
            full_path (str):
                The full path of the element.

            version (str):
                The version to select.

        Returns:
            str:
            The relative path followed by ``@@`` and the version, or
            ``None`` if no version was given.
        """
        if not version:
            return None

        return '%s%s%s' % (self.relative_path(full_path), VERSION_SEPARATOR,
                           version)

    def extended_path(
        self,
        path: str,
        version: Optional[str],
    ) -> str:
        """Return a path with the version of its final element replaced."""
        return replace_last_version(path, None, version)

    def get_vob_tag(
        self,
        path: str,
    ) -> str:
        """Return the tag of the VOB holding a path in the view."""
        try:
            return vob_tag(self.view_root, path)
        except InternalError:
            return ''

    def get_version_tree(
        self,
        element: str,
        is_file: bool = True,
    ) -> VersionTree:
        """Return the version tree of an element.

        Trees are kept for the life of the connection.

        Args:
            element (str):
                The full path of the element.

            is_file (bool, optional):
                Whether the element is a file.

        Returns:
            cleartrack.version_tree.VersionTree:
            The version tree.
        """
        element_path = self.extended_path(element, '')

        try:
            return self._trees[element_path]
        except KeyError:
            pass

        tree = VersionTree.from_lshistory(self.clear_tool.iter_lines(
            ['lshistory', '-nco', '-fmt', VERSION_TREE_FORMAT, element_path],
            cwd=self.view_path))
        self._trees[element_path] = tree

        return tree

    def get_last_version(
        self,
        path: str,
        is_file: bool,
    ) -> Optional[Version]:
        """Return the version of an element the view selects.

        The selection is evaluated at :py:attr:`target_date`, if set.

        Args:
            path (str):
                The full path of the element.

            is_file (bool):
                Whether the element is a file.

        Returns:
            cleartrack.version_tree.Version:
            The selected version, or ``None`` if nothing is selected.
        """
        def _compute() -> Optional[str]:
            version = self.config_spec.current_version(
                self.view_root,
                path,
                self.get_version_tree(path, is_file),
                is_file,
                instant=self.target_date)

            if version is None:
                return None

            return version.whole_name

        if self.cache is None or self.target_date is None:
            name = _compute()
        else:
            name = self.cache.get_or_compute(
                self.get_vob_tag(path),
                strip_versions(path),
                '%s-%s' % (format_date(self.target_date),
                           self._config_spec_digest),
                KIND_LAST_VERSION,
                _compute)

        if name is None:
            return None

        tree = self._trees.get(self.extended_path(path, ''))

        if tree is not None:
            version = tree.find(name)

            if version is not None:
                return version

        return Version.parse(name)

    def is_ignored(
        self,
        element: str,
        version: str,
        is_file: bool = True,
    ) -> bool:
        """Return whether a version falls outside the view.

        Checked out versions, and versions the view would not select at
        :py:attr:`target_date`, are ignored.

        Args:
            element (str):
                The full path of the element.

            version (str):
                The version.

            is_file (bool, optional):
                Whether the element is a file.

        Returns:
            bool:
            ``True`` if the version is ignored.
        """
        if 'CHECKEDOUT' in version:
            return True

        key = (element, version)

        try:
            return self._ignored[key]
        except KeyError:
            pass

        ignored = not self.config_spec.is_version_inside_view(
            self,
            split_path(self.extended_path(element, version)),
            is_file)
        self._ignored[key] = ignored

        return ignored

    def version_is_inside_view(
        self,
        path_without_version: str,
        version: str,
        is_file: bool,
    ) -> bool:
        """Return whether a version of an element is visible in the view.

        Args:
            path_without_version (str):
                The full path of the element.

            version (str):
                The version.

            is_file (bool):
                Whether the element is a file.

        Returns:
            bool:
            ``True`` if the version is inside the view.
        """
        return self.config_spec.is_version_inside_view(
            self,
            split_path(self.extended_path(path_without_version, version)),
            is_file)

    def list_directory(
        self,
        path: str,
        version: str,
    ) -> List[DirectoryChildElement]:
        """Return the entries of a directory version.

        Args:
            path (str):
                The full path of the directory.

            version (str):
                The version of the directory.

        Returns:
            list of DirectoryChildElement:
            The entries, in listing order.
        """
        path = strip_versions(path)

        def _compute() -> List[Dict[str, str]]:
            return [
                child.serialize()
                for child in self._read_directory(path, version)
            ]

        if self.cache is None:
            data = _compute()
        else:
            data = self.cache.get_or_compute(self.get_vob_tag(path),
                                             path,
                                             version,
                                             KIND_LISTING,
                                             _compute)

        return [
            DirectoryChildElement.deserialize(item)
            for item in data
        ]

    def _read_directory(
        self,
        path: str,
        version: str,
    ) -> Iterator[DirectoryChildElement]:
        output = self.clear_tool.execute_text(
            ['ls', '-long', self.extended_path(path, version)],
            cwd=self.view_path)

        for line in output.splitlines():
            m = _LS_LINE_RE.match(line)

            if not m:
                if line.strip():
                    logger.debug('Skipping directory entry: %s', line)

                continue

            elements = split_path(m.group('path'))

            if not elements or not elements[-1].version:
                logger.debug('Skipping unversioned directory entry: %s',
                             line)
                continue

            child = elements[-1]

            if m.group('kind') == 'directory version':
                kind = ChildKind.DIR
            else:
                kind = ChildKind.FILE

            yield DirectoryChildElement(
                path_without_version=os.path.join(path, child.name),
                string_version=child.version,
                type=kind)

    def file_exists_in_parent(
        self,
        path: str,
    ) -> bool:
        """Return whether an element is in the version of its parent in view.

        Args:
            path (str):
                The full path of the element.

        Returns:
            bool:
            ``True`` if the directory version the view selects for the
            parent lists the element.
        """
        path = strip_versions(path)
        parent = os.path.dirname(path)
        name = os.path.basename(path)
        parent_version = self.get_last_version(parent, False)

        if parent_version is None:
            return False

        if self.case_insensitive:
            name = name.lower()

        for child in self.list_directory(parent, parent_version.whole_name):
            child_name = child.name

            if self.case_insensitive:
                child_name = child_name.lower()

            if child_name == name:
                return True

        return False

    def iter_all_versions(self) -> Iterator[VersionEntry]:
        """Iterate through every element version the view selects.

        Directories are visited before anything inside them. Elements
        outside the load rules are skipped.

        Yields:
            VersionEntry:
            Each selected element version below the view path.

        Raises:
            cleartrack.errors.InternalError:
                The view selects no version of the view path.
        """
        root_version = self.get_last_version(self.view_path, False)

        if root_version is None:
            raise InternalError('No version of %s is selected by the view'
                                % self.view_path)

        yield from self._iter_directory_versions(self.view_path, root_version)

    def iter_directory_versions(
        self,
        path: str,
    ) -> Iterator[VersionEntry]:
        """Iterate through the element versions selected below a directory.

        Args:
            path (str):
                The full path of the directory.

        Yields:
            VersionEntry:
            Each selected element version below the directory.
        """
        version = self.get_last_version(path, False)

        if version is not None:
            yield from self._iter_directory_versions(strip_versions(path),
                                                     version)

    def _iter_directory_versions(
        self,
        path: str,
        version: Version,
    ) -> Iterator[VersionEntry]:
        config_spec = self.config_spec

        for child in self.list_directory(path, version.whole_name):
            child_path = child.path_without_version
            is_file = child.is_file

            if not config_spec.is_under_load_rules(self.view_root,
                                                   child_path):
                if is_file or not config_spec.is_above_load_rules(
                        self.view_root, child_path):
                    continue

            selected = self.get_last_version(child_path, is_file)

            if selected is None:
                continue

            yield VersionEntry(full_path=child_path,
                               version=selected,
                               is_file=is_file)

            if not is_file:
                yield from self._iter_directory_versions(child_path,
                                                         selected)

    def load_file_content(
        self,
        path: str,
        version: str,
    ) -> str:
        """Fetch the contents of a file version.

        Snapshot views fetch the version into the connection's temporary
        file, which is replaced on every call. Dynamic views read the
        version directly.

        Args:
            path (str):
                The full path of the file.

            version (str):
                The version to fetch.

        Returns:
            str:
            The path of a file with the contents of the version.

        Raises:
            cleartrack.errors.ObjectDestroyedError:
                The version no longer exists.

            cleartrack.errors.ExternalCommandFailedError:
                The version couldn't be fetched.
        """
        extended_path = self.extended_path(path, version)

        if self.is_dynamic:
            return extended_path

        if self._tmpfile is None:
            self._tmpfile = make_tempfile()

        # cleartool refuses to overwrite an existing file.
        delete_file(self._tmpfile)

        self.clear_tool.execute(['get', '-to', self._tmpfile, extended_path],
                                cwd=self.view_path)

        return self._tmpfile

    def load_file_attr(
        self,
        path: str,
        version: str,
    ) -> FileAttributes:
        """Return the attributes of a file version.

        Args:
            path (str):
                The full path of the file.

            version (str):
                The version.

        Returns:
            FileAttributes:
            The attributes of the version.
        """
        output = self.clear_tool.execute_text(
            ['describe', '-long', self.extended_path(path, version)],
            cwd=self.view_path)

        m = _ELEMENT_TYPE_RE.search(output)
        element_type = m.group(1) if m else ''

        return FileAttributes(
            is_text=(element_type in TEXT_ELEMENT_TYPES or
                     element_type.endswith('text_file')),
            is_executable=any(
                permissions.endswith('x')
                for permissions in _PROTECTION_RE.findall(output)
            ))

    def mklabel(
        self,
        version: str,
        path: str,
        label: str,
    ) -> None:
        """Attach a label to an element version.

        Args:
            version (str):
                The version to label.

            path (str):
                The full path of the element.

            label (str):
                The label type to attach.
        """
        self.clear_tool.execute(
            ['mklabel', '-replace', '-version', version, label,
             strip_versions(path)],
            cwd=self.view_path)

    def test_connection(self) -> str:
        """Return a description of the view, proving it can be accessed."""
        return self.clear_tool.execute_text(['lsview', '-cview', '-long'],
                                            cwd=self.view_path)
