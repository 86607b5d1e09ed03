"""Agent-side support for checking out ClearCase sources.

An agent checks sources out of its own snapshot view. Before it can do
that, it probes for a working cleartool, and it uses a
:py:class:`SourceProvider` to decide where the view lives and how its
contents reach the build's checkout directory.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

from cleartrack.changes import ChangeType, Modification
from cleartrack.errors import (ClearCaseError,
                               ConfigInvalidError,
                               ExecutableMissingError)
from cleartrack.gateway import ClearTool
from cleartrack.settings import RELATIVE_PATH, VcsRootSettings


logger = logging.getLogger(__name__)


#: Checkout rules that map the whole root to the checkout directory.
DEFAULT_CHECKOUT_RULES = frozenset(('', '+:.', '.=>.', '+:.=>.'))

#: The key reported for problems with checkout rules.
CHECKOUT_RULES_KEY = 'checkout-rules'


class DeltaKind(str, Enum):
    """The kind of change made to a file in a snapshot view."""

    ADDITION = 'addition'
    MODIFICATION = 'modification'
    DELETION = 'deletion'


@dataclass(frozen=True)
class Delta:
    """A change to a file in a snapshot view."""

    #: The kind of change.
    #:
    #: Type:
    #:     DeltaKind
    kind: DeltaKind

    #: The path of the file within the view, using ``/`` as separator.
    #:
    #: Type:
    #:     str
    path: str

    #: The revision before the change, if any.
    #:
    #: Type:
    #:     str
    revision_before: Optional[str] = None

    #: The revision after the change, if any.
    #:
    #: Type:
    #:     str
    revision_after: Optional[str] = None

    @classmethod
    def from_flags(
        cls,
        *,
        is_addition: bool,
        is_deletion: bool,
        path: str,
        revision_before: Optional[str] = None,
        revision_after: Optional[str] = None,
    ) -> Delta:
        """Return a delta, working out its kind from flags.

        Additions take precedence over deletions. A delta that is neither
        is a modification.
        """
        if is_addition:
            kind = DeltaKind.ADDITION
        elif is_deletion:
            kind = DeltaKind.DELETION
        else:
            kind = DeltaKind.MODIFICATION

        return cls(kind=kind,
                   path=path,
                   revision_before=revision_before,
                   revision_after=revision_after)

    def __str__(self) -> str:
        return ('<Delta(kind=%s, path="%s", before=%s, after=%s)>'
                % (self.kind.name, self.path, self.revision_before,
                   self.revision_after))


def deltas_from_modifications(
    modifications: Iterable[Modification],
) -> List[Delta]:
    """Return the file deltas made by a list of commits.

    Directory changes are left out, since their contents are reported
    individually.

    Args:
        modifications (list of cleartrack.changes.Modification):
            The commits.

    Returns:
        list of Delta:
        The deltas, in commit order.
    """
    deltas: List[Delta] = []

    for modification in modifications:
        for change in modification.changes:
            if not change.type.is_file:
                continue

            deltas.append(Delta.from_flags(
                is_addition=(change.type == ChangeType.ADDED),
                is_deletion=(change.type == ChangeType.REMOVED),
                path=change.relative_path,
                revision_before=change.before_version,
                revision_after=change.after_version))

    return deltas


def _normalize_relative_path(
    path: str,
) -> str:
    path = os.path.normpath(path.replace('\\', '/')).replace('\\', '/')

    if path == '.':
        return ''

    return path.strip('/')


def validate_checkout(
    settings: VcsRootSettings,
    rules: Optional[Sequence[str]],
    checkout_dir: str,
    *,
    work_dir: str,
    disable_validation_errors: bool = False,
) -> List[ConfigInvalidError.InvalidProperty]:
    """Check that a checkout can be served by the agent's own view.

    Only the default checkout rules are supported, and the checkout
    directory must match the path within the view configured for the
    root.

    Args:
        settings (cleartrack.settings.VcsRootSettings):
            The settings of the root.

        rules (list of str):
            The checkout rules of the build.

        checkout_dir (str):
            The checkout directory, either absolute or relative to the
            agent's work directory.

        work_dir (str):
            The agent's work directory.

        disable_validation_errors (bool, optional):
            Whether problems are logged as warnings instead of raised.

    Returns:
        list of tuple:
        The problems found, as ``(key, message)`` tuples. This is only
        non-empty when ``disable_validation_errors`` is set.

    Raises:
        cleartrack.errors.ConfigInvalidError:
            The checkout can't be served and validation errors are enabled.
    """
    problems: List[ConfigInvalidError.InvalidProperty] = []
    root_name = settings.describe()
    rule_lines = [
        rule.strip()
        for rule in (rules or [])
        if rule.strip()
    ]

    logger.debug('Checkout rules for %s: %r', root_name, rule_lines)

    if rule_lines and not set(rule_lines) <= DEFAULT_CHECKOUT_RULES:
        problems.append((
            CHECKOUT_RULES_KEY,
            'Checkout rules are not supported for "%s" in agent-side '
            'checkout mode: %s'
            % (root_name, '; '.join(rule_lines))))

    if os.path.isabs(checkout_dir):
        checkout_path = os.path.relpath(checkout_dir, work_dir)
    else:
        checkout_path = checkout_dir

    checkout_path = _normalize_relative_path(checkout_path)
    expected_path = _normalize_relative_path(settings.relative_path or '')

    if checkout_path != expected_path:
        problems.append((
            RELATIVE_PATH,
            'The checkout directory "%s" of "%s" must match the path '
            'within the view "%s"'
            % (checkout_path, root_name, expected_path)))

    if problems:
        if not disable_validation_errors:
            raise ConfigInvalidError(problems)

        for key, message in problems:
            logger.warning('%s: %s', key, message)

    return problems


def _publish_nothing(
    view_path: str,
    deltas: Sequence[Delta],
    publish_to: str,
) -> None:
    logger.debug('Sources for %s are already in place', publish_to)


def _publish_links(
    view_path: str,
    deltas: Sequence[Delta],
    publish_to: str,
) -> None:
    for delta in deltas:
        relative_path = delta.path.replace('/', os.sep)
        link_path = os.path.join(publish_to, relative_path)

        if os.path.lexists(link_path):
            os.unlink(link_path)

        if delta.kind == DeltaKind.DELETION:
            logger.debug('Unlinked %s', link_path)
            continue

        os.makedirs(os.path.dirname(link_path), exist_ok=True)
        os.symlink(os.path.join(view_path, relative_path), link_path)
        logger.debug('Linked %s', link_path)


class SourceProviderKind(str, Enum):
    """The ways an agent can provide sources."""

    #: The view is created in the agent's work directory, and the checkout
    #: directory is expected to be the configured path within it.
    CONVENTION = 'convention'

    #: The view is created in the checkout directory, and changed files
    #: are linked into place once updated.
    LINK = 'link'


@dataclass(frozen=True)
class SourceProvider:
    """The behavior of one way of providing sources on an agent."""

    #: The kind of provider.
    #:
    #: Type:
    #:     SourceProviderKind
    kind: SourceProviderKind

    #: Return the directory the view is created in.
    #:
    #: This takes the agent's work directory and the checkout directory.
    #:
    #: Type:
    #:     callable
    resolve_checkout_root: Callable[[str, str], str]

    #: Make updated sources available once the view is updated.
    #:
    #: This takes the view path, the deltas applied, and the directory to
    #: publish to.
    #:
    #: Type:
    #:     callable
    publish: Callable[[str, Sequence[Delta], str], None]

    #: Whether the checkout must be validated before updating.
    #:
    #: Type:
    #:     bool
    validates_checkout: bool = False


#: The provider placing the view in the agent's work directory.
CONVENTION_PROVIDER = SourceProvider(
    kind=SourceProviderKind.CONVENTION,
    resolve_checkout_root=lambda work_dir, checkout_dir: work_dir,
    publish=_publish_nothing,
    validates_checkout=True)

#: The provider linking changed files into the checkout directory.
LINK_PROVIDER = SourceProvider(
    kind=SourceProviderKind.LINK,
    resolve_checkout_root=lambda work_dir, checkout_dir: checkout_dir,
    publish=_publish_links)


def get_source_provider(
    kind: SourceProviderKind = SourceProviderKind.CONVENTION,
) -> SourceProvider:
    """Return the source provider of a kind."""
    if kind == SourceProviderKind.LINK:
        return LINK_PROVIDER

    return CONVENTION_PROVIDER


class ClearCaseAgent:
    """The agent-side entry point for ClearCase checkouts."""

    def __init__(
        self,
        clear_tool: Optional[ClearTool] = None,
        *,
        provider_kind: SourceProviderKind = SourceProviderKind.CONVENTION,
    ) -> None:
        """Initialize the agent support.

        Args:
            clear_tool (cleartrack.gateway.ClearTool, optional):
                The cleartool gateway.

            provider_kind (SourceProviderKind, optional):
                The way sources are provided.
        """
        self.clear_tool = clear_tool or ClearTool()
        self.provider = get_source_provider(provider_kind)
        self._can_run: Optional[bool] = None

    def can_run(self) -> bool:
        """Return whether cleartool can be run on this agent.

        The result of the first check is kept.

        Returns:
            bool:
            ``True`` if cleartool ran successfully.
        """
        if self._can_run is None:
            self._can_run = self._check_can_run()

        return self._can_run

    def _check_can_run(self) -> bool:
        try:
            exit_code = self.clear_tool.execute_await(['hostinfo'])
        except ExecutableMissingError:
            logger.info('ClearCase agent checkout is disabled: "%s" could '
                        'not be found. Set the cleartool.executable.path '
                        'property or the CLEARTOOL_EXEC_PATH environment '
                        'variable.',
                        self.clear_tool.executable)
            return False
        except ClearCaseError as e:
            logger.info('ClearCase agent checkout is disabled: %s', e)
            return False

        if exit_code != 0:
            logger.info('ClearCase agent checkout is disabled: "%s hostinfo" '
                        'exited with code %s',
                        self.clear_tool.executable, exit_code)
            logger.debug('PATH = %s', os.environ.get('PATH'))
            return False

        return True

    def prepare_checkout(
        self,
        settings: VcsRootSettings,
        rules: Optional[Sequence[str]],
        checkout_dir: str,
        *,
        work_dir: str,
        disable_validation_errors: bool = False,
    ) -> str:
        """Validate a checkout and return the directory for its view.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            rules (list of str):
                The checkout rules of the build.

            checkout_dir (str):
                The checkout directory.

            work_dir (str):
                The agent's work directory.

            disable_validation_errors (bool, optional):
                Whether problems are logged as warnings instead of raised.

        Returns:
            str:
            The directory the view is created in.
        """
        if self.provider.validates_checkout:
            validate_checkout(
                settings, rules, checkout_dir,
                work_dir=work_dir,
                disable_validation_errors=disable_validation_errors)

        return self.provider.resolve_checkout_root(work_dir, checkout_dir)

    def publish(
        self,
        view_path: str,
        deltas: Sequence[Delta],
        publish_to: str,
    ) -> None:
        """Make updated sources available in the checkout directory."""
        self.provider.publish(view_path, deltas, publish_to)
