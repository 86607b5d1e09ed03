"""Building patches that bring a checkout up to date with a view."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Sequence, Set

from cleartrack.changes import ChangeType, diff_directory
from cleartrack.connection import Connection, VersionEntry
from cleartrack.errors import (ClearCaseError,
                               InternalError,
                               ObjectDestroyedError)
from cleartrack.history import (ChangeVisitor,
                                HistoryElement,
                                HistoryKind,
                                process_changes)
from cleartrack.paths import VIEW_MARKER_FILE
from cleartrack.utils.dates import parse_date


logger = logging.getLogger(__name__)


#: The mode given to executable files.
EXECUTABLE_MODE = 'ugo+x'


class PatchSink:
    """Base class for receivers of patch operations.

    Paths are relative to the checkout directory and use the host's path
    separator. Operations are sent one at a time, in order.
    """

    def create_directory(
        self,
        path: str,
    ) -> None:
        """Create a directory.

        Args:
            path (str):
                The path of the directory.
        """
        raise NotImplementedError

    def delete_directory(
        self,
        path: str,
    ) -> None:
        """Delete a directory and everything in it.

        Args:
            path (str):
                The path of the directory.
        """
        raise NotImplementedError

    def delete_file(
        self,
        path: str,
    ) -> None:
        """Delete a file.

        Args:
            path (str):
                The path of the file.
        """
        raise NotImplementedError

    def write_text_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        """Create or replace a text file.

        Args:
            path (str):
                The path of the file.

            mode (str):
                The mode to apply, such as ``ugo+x``, or ``None``.

            fp (io.BufferedIOBase):
                The contents of the file.

            length (int):
                The length of the contents.
        """
        raise NotImplementedError

    def write_binary_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        """Create or replace a binary file.

        Args:
            path (str):
                The path of the file.

            mode (str):
                The mode to apply, such as ``ugo+x``, or ``None``.

            fp (io.BufferedIOBase):
                The contents of the file.

            length (int):
                The length of the contents.
        """
        raise NotImplementedError


@dataclass(frozen=True)
class PatchOperation:
    """An operation recorded by :py:class:`RecordingPatchSink`."""

    #: The name of the operation, matching the sink method.
    #:
    #: Type:
    #:     str
    name: str

    #: The path operated on.
    #:
    #: Type:
    #:     str
    path: str

    #: The mode of a written file.
    #:
    #: Type:
    #:     str
    mode: Optional[str] = None

    #: The contents of a written file.
    #:
    #: Type:
    #:     bytes
    content: Optional[bytes] = None


class RecordingPatchSink(PatchSink):
    """A patch sink that records every operation it receives."""

    def __init__(self) -> None:
        self.operations: List[PatchOperation] = []

    def create_directory(
        self,
        path: str,
    ) -> None:
        self.operations.append(PatchOperation('create_directory', path))

    def delete_directory(
        self,
        path: str,
    ) -> None:
        self.operations.append(PatchOperation('delete_directory', path))

    def delete_file(
        self,
        path: str,
    ) -> None:
        self.operations.append(PatchOperation('delete_file', path))

    def write_text_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        self.operations.append(PatchOperation('write_text_file', path,
                                              mode, fp.read(length)))

    def write_binary_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        self.operations.append(PatchOperation('write_binary_file', path,
                                              mode, fp.read(length)))


class DirectoryPatchSink(PatchSink):
    """A patch sink that applies operations to a checkout directory."""

    def __init__(
        self,
        dest: str,
    ) -> None:
        """Initialize the sink.

        Args:
            dest (str):
                The checkout directory. It's created if missing.
        """
        self.dest = dest
        os.makedirs(dest, exist_ok=True)

    def create_directory(
        self,
        path: str,
    ) -> None:
        os.makedirs(self._get_path(path), exist_ok=True)

    def delete_directory(
        self,
        path: str,
    ) -> None:
        full_path = self._get_path(path)

        if os.path.isdir(full_path):
            shutil.rmtree(full_path)

    def delete_file(
        self,
        path: str,
    ) -> None:
        full_path = self._get_path(path)

        if os.path.lexists(full_path):
            os.unlink(full_path)

    def write_text_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        self._write_file(path, mode, fp, length)

    def write_binary_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        self._write_file(path, mode, fp, length)

    def _get_path(
        self,
        path: str,
    ) -> str:
        full_path = os.path.normpath(os.path.join(self.dest, path))
        dest = os.path.normpath(self.dest)

        if full_path != dest and not full_path.startswith(dest + os.sep):
            raise InternalError('"%s" is outside of the checkout directory'
                                % path)

        return full_path

    def _write_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        full_path = self._get_path(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)

        with open(full_path, 'wb') as out:
            shutil.copyfileobj(fp, out)

        if mode == EXECUTABLE_MODE:
            st_mode = os.stat(full_path).st_mode
            os.chmod(full_path,
                     st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class PatchBuilder(ChangeVisitor):
    """Sends the operations updating a checkout to a patch sink.

    A patch is built in one of three ways:

    1. Without a starting version, in fast export mode, every file in the
       view directory is copied.
    2. Without a starting version, or if the config spec changed since the
       last patch, every version the view selects is written.
    3. Otherwise, the history between the two versions is replayed.

    When replaying, a directory added in the range is written out in full
    when it's added, so the records for anything inside it are skipped.
    ClearCase checks in the contents of a new directory before the
    directory itself, and this keeps them from being written before the
    directory is created.
    """

    ######################
    # Instance variables #
    ######################

    #: The connection to the view.
    connection: Connection

    #: Whether to copy files straight from the view for a full patch.
    fast_export: bool

    #: The sink receiving the patch.
    sink: PatchSink

    def __init__(
        self,
        connection: Connection,
        sink: PatchSink,
        *,
        fast_export: bool = False,
    ) -> None:
        """Initialize the builder.

        Args:
            connection (cleartrack.connection.Connection):
                The connection to the view.

            sink (PatchSink):
                The sink receiving the patch.

            fast_export (bool, optional):
                Whether to copy files straight from the view for a full
                patch.
        """
        self.connection = connection
        self.sink = sink
        self.fast_export = fast_export

        self._written: Dict[str, str] = {}
        self._directories: Set[str] = set()
        self._added_directories: Set[str] = set()

    def build(
        self,
        from_version: Optional[str],
        to_version: str,
    ) -> None:
        """Build the patch.

        Args:
            from_version (str):
                The version the checkout is at, or ``None`` for an empty
                checkout.

            to_version (str):
                The version to bring the checkout to.

        Raises:
            cleartrack.errors.ClearCaseError:
                The patch couldn't be built.
        """
        connection = self.connection

        if from_version is None:
            if self.fast_export:
                self.export_files_from_disk()
            else:
                self.process_all_versions(to_version)
        elif connection.config_spec_changed():
            logger.info('The config spec of %s changed; building a full '
                        'patch',
                        connection.view_path)
            self.process_all_versions(to_version)
        else:
            connection.prepare(to_version)

            try:
                from_date = parse_date(from_version)
            except ValueError as e:
                raise InternalError('"%s" is not a valid version: %s'
                                    % (from_version, e)) from e

            process_changes(connection, from_date, connection.target_date,
                            self)

    def export_files_from_disk(self) -> None:
        """Copy every file in the view directory into the patch."""
        view_path = self.connection.view_path
        logger.debug('Exporting files from %s', view_path)

        for dirpath, dirnames, filenames in os.walk(view_path):
            dirnames.sort()
            relative_dir = os.path.relpath(dirpath, view_path)

            if relative_dir == os.curdir:
                relative_dir = ''
            else:
                self._create_directory(relative_dir)

            for filename in sorted(filenames):
                if not relative_dir and filename == VIEW_MARKER_FILE:
                    continue

                full_path = os.path.join(dirpath, filename)

                if not os.path.isfile(full_path):
                    continue

                if os.stat(full_path).st_mode & stat.S_IXUSR:
                    mode = EXECUTABLE_MODE
                else:
                    mode = None

                self._write_file(os.path.join(relative_dir, filename),
                                 full_path,
                                 is_text=False,
                                 mode=mode)

    def process_all_versions(
        self,
        to_version: str,
    ) -> None:
        """Write every version the view selects into the patch.

        Args:
            to_version (str):
                The version to select files at.
        """
        connection = self.connection
        connection.prepare(to_version)

        for entry in connection.iter_all_versions():
            self._process_version(entry)

    def prepare_changes(
        self,
        elements: Sequence[HistoryElement],
    ) -> None:
        connection = self.connection
        added: Set[str] = set()

        for element in elements:
            if element.kind != HistoryKind.DIR:
                continue

            for change_type, child in diff_directory(connection, element):
                if change_type == ChangeType.DIRECTORY_ADDED:
                    added.add(self._path_key(child.path_without_version))

        self._added_directories = added

    def process_changed_file(
        self,
        element: HistoryElement,
    ) -> None:
        connection = self.connection
        path = element.object_name

        if self._is_in_added_directory(path):
            logger.debug('Skipping %s: written with its new directory', path)
            return

        try:
            version = connection.get_last_version(path, True)
        except ObjectDestroyedError as e:
            logger.warning('"%s" is no longer a ClearCase element, so it '
                           'will be deleted: %s',
                           path, e)
            self._delete_file(self._relative_path(path))
            return

        if version is not None and connection.file_exists_in_parent(path):
            self._load_file(path, version.whole_name)

    def process_changed_directory(
        self,
        element: HistoryElement,
    ) -> None:
        connection = self.connection

        if self._is_in_added_directory(element.object_name):
            logger.debug('Skipping %s@@%s: written in full when added',
                         element.object_name, element.object_version)
            return

        for change_type, child in diff_directory(connection, element):
            path = child.path_without_version

            if change_type == ChangeType.ADDED:
                self._load_file(path, child.string_version)
            elif change_type == ChangeType.REMOVED:
                self._delete_file(self._relative_path(path))
            elif change_type == ChangeType.DIRECTORY_REMOVED:
                self._delete_directory(self._relative_path(path))
            elif change_type == ChangeType.DIRECTORY_ADDED:
                self._create_directory(self._relative_path(path))

                for entry in connection.iter_directory_versions(path):
                    self._process_version(entry)

    def process_destroyed_file_version(
        self,
        element: HistoryElement,
    ) -> None:
        self.process_changed_file(element)

    def _relative_path(
        self,
        path: str,
    ) -> str:
        return self.connection.relative_path(path).replace('/', os.sep)

    def _path_key(
        self,
        path: str,
    ) -> str:
        key = self.connection.relative_path(path)

        if self.connection.case_insensitive:
            key = key.lower()

        return key

    def _is_in_added_directory(
        self,
        path: str,
    ) -> bool:
        key = self._path_key(path)

        return any(
            key == directory or key.startswith(directory + '/')
            for directory in self._added_directories
        )

    def _process_version(
        self,
        entry: VersionEntry,
    ) -> None:
        if entry.is_file:
            self._load_file(entry.full_path, entry.version.whole_name)
        else:
            self._create_directory(self._relative_path(entry.full_path))

    def _load_file(
        self,
        path: str,
        version: str,
    ) -> None:
        connection = self.connection
        relative_path = self._relative_path(path)

        if self._written.get(relative_path) == version:
            return

        try:
            content_path = connection.load_file_content(path, version)
        except ObjectDestroyedError as e:
            logger.warning('Could not get the contents of "%s@@%s". The '
                           'element may have been removed, so it will be '
                           'deleted: %s',
                           path, version, e)
            self._delete_file(relative_path)
            return

        if not os.path.isfile(content_path):
            logger.debug('No contents were fetched for %s@@%s',
                         path, version)
            return

        attrs = connection.load_file_attr(path, version)

        if attrs.is_executable:
            mode = EXECUTABLE_MODE
        else:
            mode = None

        self._write_file(relative_path, content_path,
                         is_text=attrs.is_text,
                         mode=mode)
        self._written[relative_path] = version

    def _write_file(
        self,
        relative_path: str,
        content_path: str,
        is_text: bool,
        mode: Optional[str],
    ) -> None:
        try:
            with open(content_path, 'rb') as fp:
                length = os.fstat(fp.fileno()).st_size

                if is_text:
                    self.sink.write_text_file(relative_path, mode, fp,
                                              length)
                else:
                    self.sink.write_binary_file(relative_path, mode, fp,
                                                length)
        except OSError as e:
            raise ClearCaseError('Unable to write %s to the patch: %s'
                                 % (relative_path, e)) from e

    def _create_directory(
        self,
        relative_path: str,
    ) -> None:
        if relative_path not in self._directories:
            self._directories.add(relative_path)
            self.sink.create_directory(relative_path)

    def _delete_directory(
        self,
        relative_path: str,
    ) -> None:
        prefix = relative_path + os.sep
        self._directories = {
            path
            for path in self._directories
            if path != relative_path and not path.startswith(prefix)
        }
        self._written = {
            path: version
            for path, version in self._written.items()
            if not path.startswith(prefix)
        }
        self.sink.delete_directory(relative_path)

    def _delete_file(
        self,
        relative_path: str,
    ) -> None:
        self._written.pop(relative_path, None)
        self.sink.delete_file(relative_path)


def build_patch(
    connection: Connection,
    from_version: Optional[str],
    to_version: str,
    sink: PatchSink,
    fast_export: bool = False,
) -> None:
    """Build a patch bringing a checkout up to date with a view.

    Args:
        connection (cleartrack.connection.Connection):
            The connection to the view.

        from_version (str):
            The version the checkout is at, or ``None`` for an empty
            checkout.

        to_version (str):
            The version to bring the checkout to.

        sink (PatchSink):
            The sink receiving the patch.

        fast_export (bool, optional):
            Whether to copy files straight from the view for a full patch.

    Raises:
        cleartrack.errors.ClearCaseError:
            The patch couldn't be built.
    """
    PatchBuilder(connection, sink, fast_export=fast_export).build(
        from_version, to_version)
