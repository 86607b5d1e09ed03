"""Implementation of cleartrack clear-cache."""

from __future__ import annotations

from cleartrack.cache import clear_cache
from cleartrack.commands.base import BaseCommand, CommandError, Option


class ClearCache(BaseCommand):
    """Delete the structure cache."""

    name = 'clear-cache'
    description = 'Delete the cache of directory listings and versions.'

    needs_support = False

    option_list = [
        Option('--caches-dir',
               dest='caches_dir',
               metavar='DIR',
               config_key='CACHES_DIR',
               default=None,
               help='The directory where caches are stored.'),
    ]

    def main(self) -> int:
        """Delete the cache directory."""
        caches_dir = self.options.caches_dir

        if not clear_cache(caches_dir):
            raise CommandError('Could not clear the cache in "%s"'
                               % caches_dir)

        self.stdout.write('Cleared cache in "%s"' % caches_dir)
        self.json.add('caches_dir', caches_dir)

        return 0
