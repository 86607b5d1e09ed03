"""A persistent cache of directory structure.

Directory listings of a given directory version never change, and neither
does the version a view selected for an element at a given time, so both
are kept on disk between requests. Entries are partitioned by VOB, and a
VOB's entries are dropped whenever the server reports activity involving
it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import threading
import weakref
from typing import (TYPE_CHECKING, Any, Callable, Dict, Iterable, List,
                    Optional, Tuple)
from urllib.parse import quote, unquote

from cleartrack.errors import CacheError

if TYPE_CHECKING:
    from cleartrack.settings import EngineConfig


logger = logging.getLogger(__name__)


#: The name of the cache directory inside the caches directory.
CACHE_DIR_NAME = 'clearCase'

#: The version of the on-disk layout.
#:
#: Caches written with another version are wiped on startup.
SCHEMA_VERSION = 1

#: The name of the file recording :py:data:`SCHEMA_VERSION`.
SCHEMA_FILENAME = 'schema-version'

#: The directory holding config spec snapshots.
CONFIG_SPECS_DIR_NAME = 'config-specs'

#: The kind of entry holding a directory listing.
KIND_LISTING = 'listing'

#: The kind of entry holding the version selected for an element.
KIND_LAST_VERSION = 'last-version'


#: A key identifying a cache entry: VOB tag, element, version and kind.
CacheKey = Tuple[str, str, str, str]


def _hash(
    value: str,
) -> str:
    return hashlib.sha1(value.encode('utf-8')).hexdigest()


class StructureCache:
    """A cache of directory listings and selected versions.

    Every value is computed at most once per key, even when requests on
    several threads ask for it together: the first caller computes and
    stores it while the others wait on a latch.

    If the cache directory can't be created or used, the cache stays
    usable but passes every lookup through to the computation.
    """

    ######################
    # Instance variables #
    ######################

    #: The directory holding the cache.
    path: str

    #: Whether the on-disk cache is usable.
    enabled: bool

    def __init__(
        self,
        caches_dir: str,
    ) -> None:
        """Initialize the cache.

        Args:
            caches_dir (str):
                The directory where caches are stored. The structure cache
                uses a subdirectory of this.
        """
        self.path = os.path.join(caches_dir, CACHE_DIR_NAME)
        self.enabled = True

        self._lock = threading.Lock()
        self._vob_locks: Dict[str, threading.RLock] = {}
        self._pending: Dict[CacheKey, threading.Event] = {}
        self._generations: Dict[str, int] = {}

        try:
            os.makedirs(self.path, exist_ok=True)
            self._check_schema()
        except (CacheError, OSError) as e:
            logger.warning('Could not create or access the structure cache '
                           'at %s: %s. Falling back to cleartool for every '
                           'lookup.',
                           self.path, e)
            self.enabled = False

    def register(
        self,
        dispatcher: EventDispatcher,
    ) -> CacheInvalidationListener:
        """Listen for server events that invalidate entries.

        Args:
            dispatcher (EventDispatcher):
                The dispatcher of server events.

        Returns:
            CacheInvalidationListener:
            The registered listener.
        """
        listener = CacheInvalidationListener(self)
        dispatcher.add_listener(listener)

        return listener

    def get_or_compute(
        self,
        vob: str,
        element: str,
        version: str,
        kind: str,
        compute: Callable[[], Any],
    ) -> Any:
        """Return a cached value, computing and storing it if missing.

        Args:
            vob (str):
                The VOB tag holding the element.

            element (str):
                The element the value describes.

            version (str):
                The version (or time) the value describes.

            kind (str):
                The kind of value.

            compute (callable):
                The function computing the value. The result must be
                serializable to JSON.

        Returns:
            object:
            The value.
        """
        if not self.enabled:
            return compute()

        key: CacheKey = (vob, element, version, kind)
        found, value = self._read(key)

        if found:
            return value

        with self._lock:
            latch = self._pending.get(key)
            owner = latch is None

            if latch is None:
                latch = threading.Event()
                self._pending[key] = latch

            generation = self._generations.get(vob, 0)

        if not owner:
            latch.wait()
            found, value = self._read(key)

            if found:
                return value

            # The owner failed, or the entry was invalidated meanwhile.
            return compute()

        try:
            found, value = self._read(key)

            if not found:
                value = compute()
                self._write(key, value, generation)

            return value
        finally:
            with self._lock:
                del self._pending[key]

            latch.set()

    def invalidate(
        self,
        vob: str,
    ) -> None:
        """Drop every entry for a VOB.

        Values being computed when this is called won't be stored.

        Args:
            vob (str):
                The VOB tag.
        """
        if not self.enabled:
            return

        logger.debug('Invalidating structure cache for VOB %s', vob)

        with self._get_vob_lock(vob):
            with self._lock:
                self._generations[vob] = self._generations.get(vob, 0) + 1

            shutil.rmtree(self._vob_path(vob), ignore_errors=True)

    def clear(self) -> None:
        """Drop every entry in the cache."""
        if not self.enabled:
            return

        for vob in self._iter_vobs():
            self.invalidate(vob)

    def get_config_spec_snapshot(
        self,
        view_path: str,
    ) -> Optional[str]:
        """Return the config spec last stored for a view path.

        Args:
            view_path (str):
                The view path.

        Returns:
            str:
            The stored config spec, or ``None`` if there isn't one.
        """
        if not self.enabled:
            return None

        try:
            with open(self._config_spec_path(view_path)) as fp:
                return fp.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning('Could not read the stored config spec for %s: '
                           '%s',
                           view_path, e)
            return None

    def store_config_spec_snapshot(
        self,
        view_path: str,
        config_spec: str,
    ) -> None:
        """Store the config spec of a view path.

        Args:
            view_path (str):
                The view path.

            config_spec (str):
                The text of the config spec.
        """
        if not self.enabled:
            return

        path = self._config_spec_path(view_path)

        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)

            with open(path + '.tmp', 'w') as fp:
                fp.write(config_spec)

            os.replace(path + '.tmp', path)
        except OSError as e:
            logger.warning('Could not store the config spec for %s: %s',
                           view_path, e)

    def _check_schema(self) -> None:
        """Wipe the cache if it was written with another layout.

        Raises:
            cleartrack.errors.CacheError:
                The schema marker couldn't be written.
        """
        marker = os.path.join(self.path, SCHEMA_FILENAME)

        try:
            with open(marker) as fp:
                schema = fp.read().strip()
        except FileNotFoundError:
            schema = None

        if schema == str(SCHEMA_VERSION):
            return

        if schema is not None:
            logger.debug('Structure cache schema %s is outdated; wiping %s',
                         schema, self.path)

        for name in os.listdir(self.path):
            path = os.path.join(self.path, name)

            if os.path.isdir(path):
                shutil.rmtree(path, ignore_errors=True)
            else:
                os.unlink(path)

        try:
            with open(marker, 'w') as fp:
                fp.write(str(SCHEMA_VERSION))
        except OSError as e:
            raise CacheError('Unable to write %s: %s' % (marker, e)) from e

    def _read(
        self,
        key: CacheKey,
    ) -> Tuple[bool, Any]:
        vob = key[0]
        path = self._entry_path(key)

        with self._get_vob_lock(vob):
            try:
                with open(path) as fp:
                    return True, json.load(fp)['value']
            except FileNotFoundError:
                return False, None
            except (OSError, KeyError, ValueError) as e:
                logger.warning('Ignoring unreadable structure cache entry '
                               '%s: %s',
                               path, e)
                return False, None

    def _write(
        self,
        key: CacheKey,
        value: Any,
        generation: int,
    ) -> None:
        vob = key[0]
        path = self._entry_path(key)

        with self._get_vob_lock(vob):
            with self._lock:
                if self._generations.get(vob, 0) != generation:
                    logger.debug('Not storing %r, which was invalidated '
                                 'while being computed',
                                 key)
                    return

            try:
                os.makedirs(os.path.dirname(path), exist_ok=True)

                with open(path + '.tmp', 'w') as fp:
                    json.dump({'value': value}, fp)

                os.replace(path + '.tmp', path)
            except OSError as e:
                logger.warning('Could not write structure cache entry %s: %s',
                               path, e)

    def _get_vob_lock(
        self,
        vob: str,
    ) -> threading.RLock:
        with self._lock:
            try:
                return self._vob_locks[vob]
            except KeyError:
                lock = threading.RLock()
                self._vob_locks[vob] = lock

                return lock

    def _iter_vobs(self) -> List[str]:
        try:
            names = os.listdir(self.path)
        except OSError:
            return []

        return [
            unquote(name)
            for name in names
            if (name != CONFIG_SPECS_DIR_NAME and
                os.path.isdir(os.path.join(self.path, name)))
        ]

    def _vob_path(
        self,
        vob: str,
    ) -> str:
        return os.path.join(self.path, quote(vob, safe=''))

    def _entry_path(
        self,
        key: CacheKey,
    ) -> str:
        vob, element, version, kind = key

        return os.path.join(self._vob_path(vob),
                            _hash(element),
                            '%s-%s' % (quote(version, safe=''), kind))

    def _config_spec_path(
        self,
        view_path: str,
    ) -> str:
        return os.path.join(self.path, CONFIG_SPECS_DIR_NAME,
                            _hash(view_path))


class ServerListener:
    """A receiver of server events.

    Subclasses override the events they care about.
    """

    @property
    def alive(self) -> bool:
        """Whether the listener still wants events.

        Type:
            bool
        """
        return True

    def build_finished(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        """Handle a finished build.

        Args:
            vob_tags (list of str):
                The VOBs the build's roots use.
        """

    def root_registered(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        """Handle a newly registered VCS root.

        Args:
            vob_tags (list of str):
                The VOBs the root uses.
        """


class CacheInvalidationListener(ServerListener):
    """Invalidates structure cache entries on server events.

    Only a weak reference to the cache is held, so the listener doesn't
    keep the cache alive. Once the cache is gone, the listener is dropped
    by the dispatcher.
    """

    def __init__(
        self,
        cache: StructureCache,
    ) -> None:
        """Initialize the listener.

        Args:
            cache (StructureCache):
                The cache to invalidate.
        """
        self._cache_ref = weakref.ref(cache)

    @property
    def alive(self) -> bool:
        return self._cache_ref() is not None

    def build_finished(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        self._invalidate(vob_tags)

    def root_registered(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        self._invalidate(vob_tags)

    def _invalidate(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        cache = self._cache_ref()

        if cache is not None:
            for vob in vob_tags:
                cache.invalidate(vob)


class EventDispatcher:
    """Delivers server events to registered listeners."""

    def __init__(self) -> None:
        """Initialize the dispatcher."""
        self._listeners: List[ServerListener] = []
        self._lock = threading.Lock()

    def add_listener(
        self,
        listener: ServerListener,
    ) -> None:
        """Register a listener."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(
        self,
        listener: ServerListener,
    ) -> None:
        """Unregister a listener."""
        with self._lock:
            self._listeners.remove(listener)

    @property
    def listeners(self) -> List[ServerListener]:
        """The listeners still receiving events.

        Type:
            list of ServerListener
        """
        with self._lock:
            self._listeners = [
                listener
                for listener in self._listeners
                if listener.alive
            ]

            return list(self._listeners)

    def build_finished(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        """Notify listeners that a build has finished.

        Args:
            vob_tags (list of str):
                The VOBs the build's roots use.
        """
        vob_tags = list(vob_tags)

        for listener in self.listeners:
            listener.build_finished(vob_tags)

    def root_registered(
        self,
        vob_tags: Iterable[str],
    ) -> None:
        """Notify listeners that a VCS root has been registered.

        Args:
            vob_tags (list of str):
                The VOBs the root uses.
        """
        vob_tags = list(vob_tags)

        for listener in self.listeners:
            listener.root_registered(vob_tags)


def create_structure_cache(
    config: EngineConfig,
) -> Optional[StructureCache]:
    """Return the structure cache to use for a configuration.

    Args:
        config (cleartrack.settings.EngineConfig):
            The engine configuration.

    Returns:
        StructureCache:
        The cache, or ``None`` if caching is disabled.
    """
    if config.DISABLE_CACHES:
        logger.debug('The structure cache is disabled')
        return None

    return StructureCache(config.CACHES_DIR)


def clear_cache(
    caches_dir: str,
) -> bool:
    """Delete the structure cache from disk.

    Args:
        caches_dir (str):
            The directory where caches are stored.

    Returns:
        bool:
        ``True`` if the operation succeeded. ``False``, otherwise.
    """
    path = os.path.join(caches_dir, CACHE_DIR_NAME)

    try:
        if os.path.exists(path):
            shutil.rmtree(path)

        return True
    except OSError as e:
        logger.error('Could not clear cache in "%s": %s. Try manually '
                     'removing it if it exists.',
                     path, e)
        return False
