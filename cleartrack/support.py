"""The entry points for collecting changes, building patches and labelling.

:py:class:`ClearCaseSupport` ties the engine together for a caller that
works in terms of VCS root settings: it owns the cleartool gateway and the
structure cache, and opens a :py:class:`~cleartrack.connection.Connection`
for each request.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

from cleartrack.cache import (EventDispatcher,
                              StructureCache,
                              create_structure_cache)
from cleartrack.changes import Modification, collect_changes
from cleartrack.connection import Connection
from cleartrack.errors import ClearCaseError, LabelExistsError
from cleartrack.gateway import ClearTool
from cleartrack.paths import VERSION_SEPARATOR, find_view_root, map_full_path
from cleartrack.patches import PatchSink, build_patch
from cleartrack.settings import (EngineConfig,
                                 VcsRootSettings,
                                 check_properties)
from cleartrack.utils.dates import compare_versions, current_version


logger = logging.getLogger(__name__)


#: The comment given to label types created for labelling.
LABEL_TYPE_COMMENT = 'Label created by cleartrack'


class ClearCaseSupport:
    """Collects changes from, and builds patches out of, ClearCase views."""

    ######################
    # Instance variables #
    ######################

    #: The structure cache, if caching is enabled.
    cache: Optional[StructureCache]

    #: The cleartool gateway.
    clear_tool: ClearTool

    #: The engine configuration.
    config: EngineConfig

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        clear_tool: Optional[ClearTool] = None,
        cache: Optional[StructureCache] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ) -> None:
        """Initialize the support.

        Args:
            config (cleartrack.settings.EngineConfig, optional):
                The engine configuration.

            clear_tool (cleartrack.gateway.ClearTool, optional):
                The cleartool gateway. One is created from the
                configuration if not provided.

            cache (cleartrack.cache.StructureCache, optional):
                The structure cache. One is created from the configuration
                if not provided.

            dispatcher (cleartrack.cache.EventDispatcher, optional):
                The dispatcher of server events, used to invalidate the
                structure cache.
        """
        if config is None:
            config = EngineConfig()

        if clear_tool is None:
            clear_tool = ClearTool(config.CLEARTOOL_EXECUTABLE)

        if cache is None:
            cache = create_structure_cache(config)

        self.config = config
        self.clear_tool = clear_tool
        self.cache = cache

        if cache is not None and dispatcher is not None:
            cache.register(dispatcher)

    def create_connection(
        self,
        settings: VcsRootSettings,
        include_from: str = '',
    ) -> Connection:
        """Open a connection to the view of a root.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            include_from (str, optional):
                A path within the view path to restrict the connection to.

        Returns:
            cleartrack.connection.Connection:
            The connection. The caller must dispose of it.
        """
        view_path = settings.view_path

        if len(view_path) > 1:
            view_path = view_path.rstrip('/\\')

        if include_from:
            view_path = os.path.join(view_path,
                                     include_from.replace('/', os.sep))

        return Connection(view_path,
                          clear_tool=self.clear_tool,
                          is_ucm=settings.is_ucm,
                          cache=self.cache)

    def collect_changes(
        self,
        settings: VcsRootSettings,
        from_version: str,
        to_version: str,
        include_from: str = '',
    ) -> List[Modification]:
        """Collect the commits made to a root between two versions.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            from_version (str):
                The version to collect changes from.

            to_version (str):
                The version to collect changes up to.

            include_from (str, optional):
                A path within the view path to restrict collection to.

        Returns:
            list of cleartrack.changes.Modification:
            The commits, oldest first.
        """
        with self.create_connection(settings, include_from) as connection:
            return collect_changes(connection, from_version, to_version)

    def build_patch(
        self,
        settings: VcsRootSettings,
        from_version: Optional[str],
        to_version: str,
        sink: PatchSink,
        include_from: str = '',
    ) -> None:
        """Build a patch for a root.

        Once the patch is built, the config spec of the view is stored so
        the next patch can tell if it changed.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            from_version (str):
                The version the checkout is at, or ``None`` for an empty
                checkout.

            to_version (str):
                The version to bring the checkout to.

            sink (cleartrack.patches.PatchSink):
                The sink receiving the patch.

            include_from (str, optional):
                A path within the view path to restrict the patch to.
        """
        with self.create_connection(settings, include_from) as connection:
            build_patch(connection, from_version, to_version, sink,
                        fast_export=self.config.OPTIMIZE_INITIAL_CHECKOUT)
            connection.store_config_spec()

    def get_content(
        self,
        settings: VcsRootSettings,
        path: str,
        version: str,
    ) -> bytes:
        """Return the contents of a file as the view selected it at a version.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            path (str):
                The path of the file, relative to the view path.

            version (str):
                The version to select the file at.

        Returns:
            bytes:
            The contents of the file.

        Raises:
            cleartrack.errors.ClearCaseError:
                The view selects no version of the file.
        """
        with self.create_connection(settings) as connection:
            connection.collect_changes_to_ignore(version)

            full_path = os.path.join(connection.view_path,
                                     path.replace('/', os.sep))
            selected = connection.get_last_version(full_path, True)

            if selected is None:
                raise ClearCaseError('"%s" is not in the view at version %s'
                                     % (path, version))

            return self._read_content(connection, full_path,
                                      selected.whole_name)

    def get_change_content(
        self,
        settings: VcsRootSettings,
        version_path: str,
    ) -> bytes:
        """Return the contents of a file version named by a change.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            version_path (str):
                The version, as found in
                :py:attr:`cleartrack.changes.Change.before_version` or
                :py:attr:`~cleartrack.changes.Change.after_version`.

        Returns:
            bytes:
            The contents of the version.
        """
        path, sep, version = version_path.partition(VERSION_SEPARATOR)

        if not sep or not version:
            raise ClearCaseError('"%s" does not name a version'
                                 % version_path)

        with self.create_connection(settings) as connection:
            full_path = os.path.join(connection.view_path,
                                     path.replace('/', os.sep))

            return self._read_content(connection, full_path, version)

    def _read_content(
        self,
        connection: Connection,
        full_path: str,
        version: str,
    ) -> bytes:
        content_path = connection.load_file_content(full_path, version)

        with open(content_path, 'rb') as fp:
            return fp.read()

    def create_label(
        self,
        label: str,
        settings: VcsRootSettings,
    ) -> None:
        """Create a label type, if it doesn't already exist.

        Args:
            label (str):
                The name of the label type.

            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.
        """
        args = ['mklbtype']

        if settings.use_global_label:
            args.append('-global')

        if settings.global_labels_vob:
            label_type = '%s@%s' % (label, settings.global_labels_vob)
        else:
            label_type = label

        args += ['-c', LABEL_TYPE_COMMENT, label_type]

        try:
            self.clear_tool.execute(args, cwd=settings.view_path)
        except LabelExistsError:
            logger.debug('Label type %s already exists', label_type)

    def label(
        self,
        label: str,
        version: str,
        settings: VcsRootSettings,
        include_froms: Sequence[str] = ('',),
    ) -> str:
        """Attach a label to every version the view selects at a version.

        Args:
            label (str):
                The name of the label.

            version (str):
                The version to select files at.

            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            include_froms (list of str, optional):
                The paths within the view path to label.

        Returns:
            str:
            The label.
        """
        self.create_label(label, settings)

        for include_from in include_froms:
            with self.create_connection(settings,
                                        include_from) as connection:
                connection.prepare(version)

                for entry in connection.iter_all_versions():
                    connection.mklabel(entry.version.whole_name,
                                       entry.full_path,
                                       label)

        return label

    def get_current_version(self) -> str:
        """Return the version string for the current moment."""
        return current_version()

    def describe_root(
        self,
        settings: VcsRootSettings,
    ) -> str:
        return settings.describe()

    def map_full_path(
        self,
        settings: VcsRootSettings,
        full_path: str,
    ) -> List[str]:
        """Map a repository path to a path relative to a root's view path.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

            full_path (str):
                The repository path, such as ``/vobs/project/src/a.txt``.

        Returns:
            list of str:
            The relative path, or an empty list if the path isn't inside
            the view path.
        """
        view_root = find_view_root(settings.view_path)

        if view_root is None:
            view_root = self.clear_tool.execute_text(
                ['pwv', '-root'],
                cwd=settings.view_path).strip()

        return map_full_path(settings.view_path, view_root, full_path)

    def test_connection(
        self,
        settings: VcsRootSettings,
    ) -> str:
        """Check that a root's view can be used.

        Args:
            settings (cleartrack.settings.VcsRootSettings):
                The settings of the root.

        Returns:
            str:
            A description of the view.

        Raises:
            cleartrack.errors.ClearCaseError:
                The settings are invalid or the view can't be used.
        """
        check_properties(settings.to_properties())

        with self.create_connection(settings) as connection:
            return connection.test_connection()

    def version_display_name(
        self,
        version: str,
    ) -> str:
        return version

    def compare_versions(
        self,
        version1: str,
        version2: str,
    ) -> int:
        return compare_versions(version1, version2)
