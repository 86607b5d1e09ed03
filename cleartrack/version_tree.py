"""The branch and version structure of a single element."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from cleartrack.errors import InternalError
from cleartrack.utils.dates import parse_date


logger = logging.getLogger(__name__)


#: The field separator used in :py:data:`VERSION_TREE_FORMAT` output.
FIELD_SEPARATOR = '#--#'

#: The record terminator used in :py:data:`VERSION_TREE_FORMAT` output.
RECORD_TERMINATOR = '#==#'

#: The ``lshistory -fmt`` format used to load a version tree.
#:
#: Each record holds the date, the version, the predecessor version and the
#: labels attached to the version.
VERSION_TREE_FORMAT = FIELD_SEPARATOR.join((
    '%Nd', '%Vn', '%PVn', '%Nl',
)) + RECORD_TERMINATOR + '\\n'


def _version_separator(
    name: str,
) -> str:
    if '\\' in name and '/' not in name:
        return '\\'

    return '/'


@dataclass(frozen=True)
class Version:
    """A single version of an element.

    Versions order by branch path, then numerically by ordinal.
    """

    #: The branch holding the version, such as ``/main/dev``.
    #:
    #: Type:
    #:     str
    branch_path: str

    #: The number of the version on its branch.
    #:
    #: ``0`` is the version created along with the branch.
    #:
    #: Type:
    #:     int
    ordinal: int

    #: The full version name, such as ``/main/dev/3``.
    #:
    #: Type:
    #:     str
    whole_name: str

    #: The date the version was created.
    #:
    #: Type:
    #:     datetime.datetime
    date: Optional[datetime] = field(default=None, compare=False)

    #: The labels attached to the version.
    #:
    #: Type:
    #:     tuple of str
    labels: Tuple[str, ...] = field(default=(), compare=False)

    #: The full name of the predecessor version, if known.
    #:
    #: Type:
    #:     str
    predecessor: Optional[str] = field(default=None, compare=False)

    @classmethod
    def parse(
        cls,
        whole_name: str,
        **kwargs,
    ) -> Version:
        """Parse a version name.

        Args:
            whole_name (str):
                The version name, such as ``/main/3`` or ``\\main\\3``.

            **kwargs (dict):
                Additional attributes for the version.

        Returns:
            Version:
            The parsed version.

        Raises:
            cleartrack.errors.InternalError:
                The name doesn't end with a numeric ordinal.
        """
        sep = _version_separator(whole_name)
        parts = whole_name.strip(sep).split(sep)

        if len(parts) < 2 or not parts[-1].isdigit():
            raise InternalError('"%s" is not a valid version' % whole_name)

        return cls(branch_path=sep + sep.join(parts[:-1]),
                   ordinal=int(parts[-1]),
                   whole_name=whole_name,
                   **kwargs)

    @property
    def sort_key(self) -> Tuple[str, int]:
        return self.branch_path, self.ordinal

    def __lt__(
        self,
        other: Version,
    ) -> bool:
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        return self.whole_name


class VersionTree:
    """The versions of an element, grouped by branch.

    Trees are built from ``cleartool lshistory`` output with
    :py:meth:`from_lshistory`.
    """

    ######################
    # Instance variables #
    ######################

    #: The versions on each branch, ordered by ordinal.
    _branches: Dict[str, List[Version]]

    #: The versions, keyed by full name.
    _versions: Dict[str, Version]

    def __init__(
        self,
        versions: Iterable[Version] = (),
    ) -> None:
        """Initialize the tree.

        Args:
            versions (list of Version, optional):
                The versions in the tree.
        """
        self._branches = {}
        self._versions = {}

        for version in versions:
            self._versions[version.whole_name] = version
            self._branches.setdefault(version.branch_path, []).append(version)

        for branch_versions in self._branches.values():
            branch_versions.sort()

    @classmethod
    def from_lshistory(
        cls,
        output: Iterable[str],
    ) -> VersionTree:
        """Build a tree from lshistory output.

        The output must have been written using
        :py:data:`VERSION_TREE_FORMAT`. Records for anything other than a
        numbered version (such as branch or element creation) are skipped.

        Args:
            output (iterable of str):
                The lines of output.

        Returns:
            VersionTree:
            The resulting tree.

        Raises:
            cleartrack.errors.InternalError:
                A record couldn't be parsed.
        """
        versions: List[Version] = []

        for record in ''.join(output).split(RECORD_TERMINATOR):
            record = record.strip()

            if not record:
                continue

            fields = record.split(FIELD_SEPARATOR)

            if len(fields) != 4:
                raise InternalError('Unexpected version record: %r' % record)

            date, name, predecessor, labels = fields
            sep = _version_separator(name)

            if not name.rstrip(sep).rsplit(sep, 1)[-1].isdigit():
                continue

            try:
                parsed_date = parse_date(date)
            except ValueError:
                raise InternalError('Unexpected date in version record: %r'
                                    % record)

            versions.append(Version.parse(
                name,
                date=parsed_date,
                labels=tuple(labels.split()),
                predecessor=predecessor or None))

        return cls(versions)

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self):
        return iter(sorted(self._versions.values()))

    @property
    def branches(self) -> List[str]:
        """The branch paths in the tree.

        Type:
            list of str
        """
        return sorted(self._branches)

    def find(
        self,
        whole_name: str,
    ) -> Optional[Version]:
        """Return the version with the given full name, if present."""
        return self._versions.get(whole_name)

    def find_label(
        self,
        label: str,
    ) -> Optional[Version]:
        """Return the version carrying a label, if any."""
        for version in self._versions.values():
            if label in version.labels:
                return version

        return None

    def find_branches(
        self,
        name: str,
    ) -> List[str]:
        """Return the branch paths whose final component is ``name``."""
        return [
            branch
            for branch in self.branches
            if branch.rstrip('/\\').rsplit(_version_separator(branch),
                                           1)[-1] == name
        ]

    def versions_on(
        self,
        branch: str,
    ) -> List[Version]:
        """Return the versions on a branch, ordered by ordinal."""
        return list(self._branches.get(branch, []))

    def latest_before(
        self,
        branch: str,
        instant: Optional[datetime] = None,
    ) -> Optional[Version]:
        """Return the latest version on a branch at a point in time.

        When two versions share a timestamp, the higher ordinal wins.

        Args:
            branch (str):
                The branch path.

            instant (datetime.datetime, optional):
                The point in time. If not provided, the latest version on
                the branch is returned.

        Returns:
            Version:
            The version, or ``None`` if the branch had no versions by then.
        """
        candidates = [
            version
            for version in self._branches.get(branch, [])
            if (instant is None or
                version.date is None or
                version.date <= instant)
        ]

        if not candidates:
            return None

        return max(candidates,
                   key=lambda version: (version.date or datetime.min,
                                        version.ordinal))

    def predecessor(
        self,
        version: Version,
    ) -> Optional[Version]:
        """Return the version a version was created from.

        Args:
            version (Version):
                The version.

        Returns:
            Version:
            The predecessor, or ``None`` for the first version of an
            element.
        """
        if version.predecessor:
            return self.find(version.predecessor)

        earlier = [
            candidate
            for candidate in self._branches.get(version.branch_path, [])
            if candidate.ordinal < version.ordinal
        ]

        if earlier:
            return earlier[-1]

        return None

    def is_under(
        self,
        version: Version,
        branch: str,
    ) -> bool:
        """Return whether a version is on a branch or one of its sub-branches.

        Args:
            version (Version):
                The version to check.

            branch (str):
                The branch path.

        Returns:
            bool:
            ``True`` if the version is in the subtree of ``branch``.
        """
        sep = _version_separator(branch)
        branch = branch.rstrip(sep)

        return (version.branch_path == branch or
                version.branch_path.startswith(branch + sep))
