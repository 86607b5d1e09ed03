"""Implementation of cleartrack content."""

from __future__ import annotations

from typing import Optional

from cleartrack.commands.base import BaseCommand, UsageError
from cleartrack.paths import VERSION_SEPARATOR


class Content(BaseCommand):
    """Print the contents of a file in a view."""

    name = 'content'
    description = (
        'Print the contents of a file as a view selected it at a version. '
        'If the path contains "@@", the named version is printed instead.'
    )

    args = '<view-path> <path> [version]'

    def main(
        self,
        view_path: str,
        path: str,
        version: Optional[str] = None,
    ) -> int:
        """Run the command.

        Args:
            view_path (str):
                The path to the view.

            path (str):
                The path of the file relative to the view path, optionally
                with a version.

            version (str, optional):
                The version to select the file at. This defaults to now.

        Returns:
            int:
            The resulting exit code.
        """
        assert self.support is not None

        settings = self.get_root_settings(view_path)

        if VERSION_SEPARATOR in path:
            if version is not None:
                raise UsageError('A version can\'t be given for a path '
                                 'that names one',
                                 'path', 'version')

            content = self.support.get_change_content(settings, path)
        else:
            if version is None:
                version = self.support.get_current_version()

            content = self.support.get_content(settings, path, version)

        if self.options.json_output:
            self.json.add('path', path)
            self.json.add('content', content.decode('utf-8', 'replace'))
        else:
            stream = self.stdout.output_stream

            if hasattr(stream, 'buffer'):
                stream.buffer.write(content)
                stream.flush()
            else:
                self.stdout.write(content.decode('utf-8', 'replace'),
                                  end='')

        return 0
