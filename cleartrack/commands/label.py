"""Implementation of cleartrack label."""

from __future__ import annotations

from typing import Optional

from cleartrack.commands.base import BaseCommand, Option


class Label(BaseCommand):
    """Attach a label to every version a view selects at a version."""

    name = 'label'
    description = (
        'Attach a label to every version a view selects at a version. The '
        'label type is created if it does not exist yet, and existing '
        'labels are moved.'
    )

    args = '<view-path> <label> [version]'
    option_list = [
        Option('--include-from',
               dest='include_froms',
               metavar='PATH',
               action='append',
               default=None,
               help='Only label versions under this path within the view. '
                    'This can be given more than once.'),
    ]

    def main(
        self,
        view_path: str,
        label: str,
        version: Optional[str] = None,
    ) -> int:
        """Run the command.

        Args:
            view_path (str):
                The path to the view.

            label (str):
                The label to attach.

            version (str, optional):
                The version to select files at. This defaults to now.

        Returns:
            int:
            The resulting exit code.
        """
        assert self.support is not None

        settings = self.get_root_settings(view_path)

        if version is None:
            version = self.support.get_current_version()

        include_froms = self.options.include_froms or ['']

        self.support.label(label, version, settings,
                           include_froms=include_froms)

        self.stdout.write('Labelled %s at %s with "%s"'
                          % (settings.describe(), version, label))
        self.json.add('label', label)
        self.json.add('version', version)

        return 0
