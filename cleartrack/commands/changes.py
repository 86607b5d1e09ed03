"""Implementation of cleartrack changes."""

from __future__ import annotations

from shutil import get_terminal_size
from typing import List, Optional

import texttable as tt

from cleartrack.changes import Modification
from cleartrack.commands.base import BaseCommand, Option


class Changes(BaseCommand):
    """List the commits made in a view between two versions."""

    name = 'changes'
    description = (
        'List the commits made in a view between two versions. Versions '
        'are timestamps in the form YYYYMMDD.HHMMSS. If the second version '
        'is omitted, commits up to now are listed.'
    )

    args = '<view-path> <from-version> [to-version]'
    option_list = [
        Option('--include-from',
               dest='include_from',
               metavar='PATH',
               default='',
               help='Only list changes under this path within the view.'),
        Option('--files-only',
               dest='files_only',
               action='store_true',
               default=False,
               help='Leave directory changes out of the listing.'),
    ]

    def tabulate(
        self,
        modifications: List[Modification],
    ) -> None:
        """Print the commits in a table.

        Args:
            modifications (list of cleartrack.changes.Modification):
                The commits to print.
        """
        self.json.add('modifications', [])

        if not modifications:
            self.stdout.write('No changes found.')
            return

        table = tt.Texttable(get_terminal_size().columns)
        table.header(['Version', 'User', 'Change', 'Path'])

        for modification in modifications:
            changes = [
                change
                for change in modification.changes
                if change.type.is_file or not self.options.files_only
            ]

            for change in changes:
                table.add_row([
                    modification.version,
                    modification.user,
                    change.type.value,
                    change.relative_path,
                ])

            self.json.append('modifications', {
                'changes': [
                    {
                        'after': change.after_version,
                        'before': change.before_version,
                        'path': change.relative_path,
                        'type': change.type.value,
                    }
                    for change in changes
                ],
                'comment': modification.comment,
                'date': modification.date.isoformat(),
                'user': modification.user,
                'version': modification.version,
            })

        self.stdout.write(table.draw())

    def main(
        self,
        view_path: str,
        from_version: str,
        to_version: Optional[str] = None,
    ) -> int:
        """Run the command.

        Args:
            view_path (str):
                The path to the view.

            from_version (str):
                The version to list commits after.

            to_version (str, optional):
                The version to list commits up to.

        Returns:
            int:
            The resulting exit code.
        """
        assert self.support is not None

        settings = self.get_root_settings(view_path)

        if to_version is None:
            to_version = self.support.get_current_version()

        self.log.debug('Collecting changes in %s from %s to %s',
                       settings.describe(), from_version, to_version)

        modifications = self.support.collect_changes(
            settings, from_version, to_version,
            include_from=self.options.include_from)

        self.tabulate(modifications)

        return 0
