"""Scanning the history of a view."""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import (Iterable, Iterator, List, Optional, Sequence,
                    TYPE_CHECKING)

from cleartrack.errors import InternalError
from cleartrack.utils.dates import format_since, parse_date
from cleartrack.version_tree import FIELD_SEPARATOR, RECORD_TERMINATOR

if TYPE_CHECKING:
    from cleartrack.connection import Connection


logger = logging.getLogger(__name__)


#: The ``lshistory -fmt`` format used to scan history.
#:
#: Each record holds the date, element name, version, predecessor
#: version, operation, object kind, user, UCM activity and comment.
HISTORY_FORMAT = FIELD_SEPARATOR.join((
    '%Nd', '%En', '%Vn', '%PVn', '%o', '%m', '%u', '%[activity]p', '%Nc',
)) + RECORD_TERMINATOR + '\\n'

#: The operations recorded when a version is destroyed.
DESTROY_OPERATIONS = frozenset(('rmver', 'rmbranch'))

_FIELD_COUNT = 9


class HistoryKind(str, Enum):
    """The kind of a history record."""

    #: A new version of a file.
    FILE = 'file'

    #: A new version of a directory.
    DIR = 'dir'

    #: A file version was destroyed.
    DESTROYED = 'destroyed'


@dataclass(frozen=True)
class HistoryElement:
    """A single record of the history of a view."""

    #: The full path of the element.
    #:
    #: Type:
    #:     str
    object_name: str

    #: The version created, such as ``/main/2``.
    #:
    #: This may be empty for destroyed versions.
    #:
    #: Type:
    #:     str
    object_version: str

    #: The predecessor of the version, if any.
    #:
    #: Type:
    #:     str
    previous_version: Optional[str]

    #: The kind of record.
    #:
    #: Type:
    #:     HistoryKind
    kind: HistoryKind

    #: The time of the change.
    #:
    #: Type:
    #:     datetime.datetime
    date: datetime

    #: The user who made the change.
    #:
    #: Type:
    #:     str
    user: str

    #: The UCM activity the change belongs to, if any.
    #:
    #: Type:
    #:     str
    activity: Optional[str] = None

    #: The checkin comment, if any.
    #:
    #: Type:
    #:     str
    comment: Optional[str] = None

    #: The cleartool operation that made the change.
    #:
    #: Type:
    #:     str
    operation: str = ''

    @property
    def object_version_int(self) -> int:
        """The numeric ordinal of the version.

        This is ``-1`` when the version has no numeric ordinal.

        Type:
            int
        """
        ordinal = self.object_version.replace('\\', '/').rsplit('/', 1)[-1]

        if ordinal.isdigit():
            return int(ordinal)

        return -1

    @property
    def is_file(self) -> bool:
        return self.kind != HistoryKind.DIR


class ChangeVisitor:
    """Base class for receivers of the records of a history scan.

    Subclasses must implement all of the ``process_*`` methods.
    """

    def prepare_changes(
        self,
        elements: Sequence[HistoryElement],
    ) -> None:
        """Look over the records of a scan before any is processed.

        This does nothing by default.

        Args:
            elements (list of HistoryElement):
                The records that will be processed, oldest first.
        """

    def process_changed_file(
        self,
        element: HistoryElement,
    ) -> None:
        """Handle a new version of a file."""
        raise NotImplementedError

    def process_changed_directory(
        self,
        element: HistoryElement,
    ) -> None:
        """Handle a new version of a directory."""
        raise NotImplementedError

    def process_destroyed_file_version(
        self,
        element: HistoryElement,
    ) -> None:
        """Handle a destroyed file version."""
        raise NotImplementedError


def parse_history_record(
    record: str,
    view_path: str = '',
) -> Optional[HistoryElement]:
    """Parse a single record written using :py:data:`HISTORY_FORMAT`.

    Records for anything other than file and directory versions, or
    destroyed versions, are skipped.

    Args:
        record (str):
            The record, without its terminator.

        view_path (str, optional):
            The path relative element names are resolved against.

    Returns:
        HistoryElement:
        The parsed record, or ``None`` if it's not relevant.

    Raises:
        cleartrack.errors.InternalError:
            The record couldn't be parsed.
    """
    fields = record.strip('\r\n').split(FIELD_SEPARATOR, _FIELD_COUNT - 1)

    if len(fields) != _FIELD_COUNT:
        raise InternalError('Unexpected history record: %r' % record)

    (date, name, version, previous, operation, object_kind, user, activity,
     comment) = fields
    object_kind = object_kind.strip()

    if operation in DESTROY_OPERATIONS:
        kind = HistoryKind.DESTROYED
    elif object_kind == 'directory version':
        kind = HistoryKind.DIR
    elif object_kind == 'version':
        kind = HistoryKind.FILE
    else:
        return None

    try:
        parsed_date = parse_date(date)
    except ValueError:
        raise InternalError('Unexpected date in history record: %r'
                            % record)

    if view_path and not os.path.isabs(name):
        name = os.path.join(view_path, name)

    return HistoryElement(object_name=name,
                          object_version=version,
                          previous_version=previous or None,
                          kind=kind,
                          date=parsed_date,
                          user=user,
                          activity=activity.strip() or None,
                          comment=comment.strip() or None,
                          operation=operation)


def iter_history_records(
    lines: Iterable[str],
    view_path: str = '',
) -> Iterator[HistoryElement]:
    """Parse lshistory output into records as it's read.

    Comments may span lines, so a record ends only at its terminator.

    Args:
        lines (iterable of str):
            The lines of output.

        view_path (str, optional):
            The path relative element names are resolved against.

    Yields:
        HistoryElement:
        Each relevant record, in output order.
    """
    pending: List[str] = []

    for line in lines:
        pending.append(line)

        if line.endswith(RECORD_TERMINATOR):
            record = '\n'.join(pending)[:-len(RECORD_TERMINATOR)]
            pending = []

            if not record.strip():
                continue

            element = parse_history_record(record, view_path)

            if element is not None:
                yield element

    if ''.join(pending).strip():
        raise InternalError('Truncated history record: %r'
                            % '\n'.join(pending))


def iter_history(
    connection: Connection,
    from_date: datetime,
    to_date: datetime,
) -> Iterator[HistoryElement]:
    """Iterate through the history of a view between two times.

    Records are yielded oldest first. Records at the same time keep the
    order they were made in. The range includes its start but not its
    end, so back-to-back ranges never share a record. Elements outside
    the load rules, and versions the view doesn't select, are left out.

    The history is read in full before the first record is yielded. The
    iterator can only be consumed once.

    Args:
        connection (cleartrack.connection.Connection):
            The connection to the view.

        from_date (datetime.datetime):
            The start of the range.

        to_date (datetime.datetime):
            The end of the range.

    Yields:
        HistoryElement:
        Each record in the range.
    """
    lines = connection.clear_tool.iter_lines(
        ['lshistory', '-r', '-nco', '-since', format_since(from_date),
         '-fmt', HISTORY_FORMAT, connection.view_path],
        cwd=connection.view_path)

    config_spec = connection.config_spec
    elements: List[HistoryElement] = []

    with contextlib.closing(lines):
        for element in iter_history_records(lines, connection.view_path):
            if not (from_date <= element.date < to_date):
                continue

            if not config_spec.is_under_load_rules(connection.view_root,
                                                   element.object_name):
                logger.debug('Skipping %s: not under the load rules',
                             element.object_name)
                continue

            if (element.kind != HistoryKind.DESTROYED and
                connection.is_ignored(element.object_name,
                                      element.object_version,
                                      element.is_file)):
                logger.debug('Skipping %s@@%s: not selected by the '
                             'view',
                             element.object_name, element.object_version)
                continue

            elements.append(element)

    # lshistory lists newest first.
    elements.reverse()
    elements.sort(key=lambda element: element.date)

    logger.debug('Found %d history records between %s and %s',
                 len(elements), from_date, to_date)

    yield from elements


def process_changes(
    connection: Connection,
    from_date: datetime,
    to_date: datetime,
    visitor: ChangeVisitor,
) -> None:
    """Pass the history of a view between two times to a visitor.

    Args:
        connection (cleartrack.connection.Connection):
            The connection to the view.

        from_date (datetime.datetime):
            The start of the range.

        to_date (datetime.datetime):
            The end of the range.

        visitor (ChangeVisitor):
            The visitor receiving each record.
    """
    elements = list(iter_history(connection, from_date, to_date))
    visitor.prepare_changes(elements)

    for element in elements:
        if element.kind == HistoryKind.DESTROYED:
            visitor.process_destroyed_file_version(element)
        elif element.kind == HistoryKind.DIR:
            visitor.process_changed_directory(element)
        else:
            visitor.process_changed_file(element)
