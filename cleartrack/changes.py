"""Collecting the changes made in a view as logical commits."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from cleartrack.connection import Connection, DirectoryChildElement
from cleartrack.errors import InternalError
from cleartrack.history import (ChangeVisitor,
                                HistoryElement,
                                process_changes)
from cleartrack.utils.dates import parse_date, version_after


logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """The type of a change to a path."""

    #: A file was added.
    ADDED = 'added'

    #: A file was modified.
    CHANGED = 'changed'

    #: A file was removed.
    REMOVED = 'removed'

    #: A directory was added.
    DIRECTORY_ADDED = 'directory-added'

    #: A directory was removed.
    DIRECTORY_REMOVED = 'directory-removed'

    @property
    def is_file(self) -> bool:
        """Whether the change is to a file.

        Type:
            bool
        """
        return self in (ChangeType.ADDED,
                        ChangeType.CHANGED,
                        ChangeType.REMOVED)


@dataclass(frozen=True)
class Change:
    """A change to a single path."""

    #: The type of change.
    #:
    #: Type:
    #:     ChangeType
    type: ChangeType

    #: The path, relative to the view path and using ``/`` as separator.
    #:
    #: Type:
    #:     str
    relative_path: str

    #: The version before the change, as ``path@@version``.
    #:
    #: Type:
    #:     str
    before_version: Optional[str] = None

    #: The version after the change, as ``path@@version``.
    #:
    #: Type:
    #:     str
    after_version: Optional[str] = None


class CommentHolder:
    """Accumulates the description of a logical commit.

    UCM activities and checkin comments are kept once each, in the order
    they were first seen. Descriptions of the versions involved are kept
    as-is.
    """

    ######################
    # Instance variables #
    ######################

    #: The UCM activities of the commit.
    activities: List[str]

    #: The checkin comments of the commit.
    comments: List[str]

    #: The versions involved in the commit.
    version_descriptions: List[str]

    def __init__(self) -> None:
        self.activities = []
        self.comments = []
        self.version_descriptions = []

    def update(
        self,
        activity: Optional[str],
        comment: Optional[str],
        version_description: Optional[str],
    ) -> None:
        """Add the details of one change.

        Args:
            activity (str):
                The UCM activity of the change, if any.

            comment (str):
                The checkin comment of the change, if any.

            version_description (str):
                The version the change created, if any.
        """
        if activity and activity not in self.activities:
            self.activities.append(activity)

        if comment and comment not in self.comments:
            self.comments.append(comment)

        if version_description:
            self.version_descriptions.append(version_description)

    def __str__(self) -> str:
        parts = self.activities + self.comments

        if self.version_descriptions:
            if parts:
                parts.append('')

            parts += self.version_descriptions

        return '\n'.join(parts)


class ModificationKey:
    """The key grouping changes into a logical commit.

    Keys compare equal when their date and user match.
    """

    def __init__(
        self,
        date: datetime,
        user: str,
    ) -> None:
        """Initialize the key.

        Args:
            date (datetime.datetime):
                The time of the changes.

            user (str):
                The user who made the changes.
        """
        self.date = date
        self.user = user
        self.comment_holder = CommentHolder()

    def __eq__(
        self,
        other: object,
    ) -> bool:
        return (isinstance(other, ModificationKey) and
                self.date == other.date and
                self.user == other.user)

    def __hash__(self) -> int:
        return hash((self.date, self.user))

    def __repr__(self) -> str:
        return '<ModificationKey(date=%s, user=%r)>' % (self.date, self.user)


@dataclass
class Modification:
    """A logical commit made in a view."""

    #: The time of the commit.
    #:
    #: Type:
    #:     datetime.datetime
    date: datetime

    #: The version string reported for the commit.
    #:
    #: Type:
    #:     str
    version: str

    #: The user who made the commit.
    #:
    #: Type:
    #:     str
    user: str

    #: The changes in the commit, in the order they were found.
    #:
    #: Type:
    #:     list of Change
    changes: List[Change] = field(default_factory=list)

    #: The description of the commit.
    #:
    #: Type:
    #:     str
    comment: str = ''


def _child_key(
    connection: Connection,
    child: DirectoryChildElement,
) -> str:
    name = child.name

    if connection.case_insensitive:
        name = name.lower()

    return '%s:%s' % (child.type.value, name)


def _iter_added_contents(
    connection: Connection,
    directory: DirectoryChildElement,
) -> Iterator[Tuple[ChangeType, DirectoryChildElement]]:
    for child in connection.list_directory(directory.path_without_version,
                                           directory.string_version):
        if child.is_file:
            yield ChangeType.ADDED, child
        else:
            yield ChangeType.DIRECTORY_ADDED, child
            yield from _iter_added_contents(connection, child)


def diff_directory(
    connection: Connection,
    element: HistoryElement,
    recursive: bool = False,
) -> Iterator[Tuple[ChangeType, DirectoryChildElement]]:
    """Compare a directory version with its predecessor.

    Removed entries are reported before added ones. An entry that changed
    between file and directory is reported as removed and added.

    Args:
        connection (cleartrack.connection.Connection):
            The connection to the view.

        element (cleartrack.history.HistoryElement):
            The history record of the new directory version.

        recursive (bool, optional):
            Whether to also report the contents of added directories.

    Yields:
        tuple:
        A 2-tuple of the :py:class:`ChangeType` and the entry changed.
    """
    path = element.object_name
    after = connection.list_directory(path, element.object_version)

    if element.previous_version:
        before = connection.list_directory(path, element.previous_version)
    else:
        before = []

    before_keys = {
        _child_key(connection, child)
        for child in before
    }
    after_keys = {
        _child_key(connection, child)
        for child in after
    }

    for child in before:
        if _child_key(connection, child) not in after_keys:
            if child.is_file:
                yield ChangeType.REMOVED, child
            else:
                yield ChangeType.DIRECTORY_REMOVED, child

    for child in after:
        if _child_key(connection, child) not in before_keys:
            if child.is_file:
                yield ChangeType.ADDED, child
            else:
                yield ChangeType.DIRECTORY_ADDED, child

                if recursive:
                    yield from _iter_added_contents(connection, child)


class ChangeCollector(ChangeVisitor):
    """Groups history records into logical commits."""

    def __init__(
        self,
        connection: Connection,
    ) -> None:
        """Initialize the collector.

        Args:
            connection (cleartrack.connection.Connection):
                The connection to the view.
        """
        self.connection = connection
        self._changes: Dict[ModificationKey, List[Change]] = {}
        self._keys: Dict[ModificationKey, ModificationKey] = {}
        self._seen: Dict[ModificationKey, Set[Tuple[str, bool]]] = {}

    def process_changed_file(
        self,
        element: HistoryElement,
    ) -> None:
        # The first version on a branch is made when the branch is.
        if element.object_version_int <= 1:
            return

        connection = self.connection
        path = element.object_name

        self._add_change(
            element,
            path,
            ChangeType.CHANGED,
            before_version=connection.relative_path_with_version(
                path, element.previous_version),
            after_version=connection.relative_path_with_version(
                path, element.object_version))

    def process_changed_directory(
        self,
        element: HistoryElement,
    ) -> None:
        connection = self.connection

        for change_type, child in diff_directory(connection, element,
                                                 recursive=True):
            if not connection.version_is_inside_view(
                    child.path_without_version,
                    child.string_version,
                    child.is_file):
                logger.debug('Skipping %s: not inside the view',
                             child.full_path)
                continue

            version = connection.relative_path_with_version(
                child.path_without_version, child.string_version)

            if change_type in (ChangeType.ADDED,
                               ChangeType.DIRECTORY_ADDED):
                self._add_change(element, child.path_without_version,
                                 change_type, after_version=version)
            else:
                self._add_change(element, child.path_without_version,
                                 change_type, before_version=version)

    def process_destroyed_file_version(
        self,
        element: HistoryElement,
    ) -> None:
        logger.debug('Ignoring destroyed version of %s',
                     element.object_name)

    def _add_change(
        self,
        element: HistoryElement,
        path: str,
        change_type: ChangeType,
        before_version: Optional[str] = None,
        after_version: Optional[str] = None,
    ) -> None:
        key = ModificationKey(element.date, element.user)
        key = self._keys.setdefault(key, key)
        relative_path = self.connection.relative_path(path)
        seen = self._seen.setdefault(key, set())
        seen_key = (relative_path, change_type.is_file)

        if seen_key in seen:
            logger.debug('Skipping duplicate change to %s', relative_path)
            return

        seen.add(seen_key)
        changes = self._changes.setdefault(key, [])
        change = Change(type=change_type,
                        relative_path=relative_path,
                        before_version=before_version,
                        after_version=after_version)

        if change_type == ChangeType.DIRECTORY_ADDED:
            # The contents of a new directory may be checked in before the
            # directory itself. They belong after it.
            prefix = relative_path + '/'
            contents = [
                existing
                for existing in changes
                if existing.relative_path.startswith(prefix)
            ]

            if contents:
                changes[:] = [
                    existing
                    for existing in changes
                    if not existing.relative_path.startswith(prefix)
                ]

            changes.append(change)
            changes.extend(contents)
        else:
            changes.append(change)

        key.comment_holder.update(element.activity,
                                  element.comment,
                                  after_version or before_version)

    def get_modifications(self) -> List[Modification]:
        """Return the logical commits collected so far.

        Returns:
            list of Modification:
            The commits, oldest first.
        """
        modifications = [
            Modification(date=key.date,
                         version=version_after(key.date),
                         user=key.user,
                         changes=changes,
                         comment=str(key.comment_holder))
            for key, changes in self._changes.items()
        ]
        modifications.sort(key=lambda modification: modification.date)

        return modifications


def collect_changes(
    connection: Connection,
    from_version: str,
    to_version: str,
) -> List[Modification]:
    """Collect the logical commits made in a view between two versions.

    Args:
        connection (cleartrack.connection.Connection):
            The connection to the view.

        from_version (str):
            The version to collect changes from.

        to_version (str):
            The version to collect changes up to.

    Returns:
        list of Modification:
        The commits, oldest first.

    Raises:
        cleartrack.errors.ClearCaseError:
            The history couldn't be read.
    """
    connection.collect_changes_to_ignore(to_version)

    try:
        from_date = parse_date(from_version)
    except ValueError as e:
        raise InternalError('"%s" is not a valid version: %s'
                            % (from_version, e)) from e

    collector = ChangeCollector(connection)
    process_changes(connection, from_date, connection.target_date, collector)

    modifications = collector.get_modifications()

    logger.debug('Collected %d modifications between %s and %s',
                 len(modifications), from_version, to_version)

    return modifications
