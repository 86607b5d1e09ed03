"""Implementation of cleartrack patch."""

from __future__ import annotations

from typing import BinaryIO, Optional

from tqdm import tqdm

from cleartrack.commands.base import BaseCommand, Option
from cleartrack.patches import DirectoryPatchSink
from cleartrack.settings import EngineConfig


class ProgressPatchSink(DirectoryPatchSink):
    """A directory patch sink reporting progress as files are written."""

    def __init__(
        self,
        dest: str,
        progress: tqdm,
    ) -> None:
        """Initialize the sink.

        Args:
            dest (str):
                The checkout directory.

            progress (tqdm.tqdm):
                The progress bar to update.
        """
        super().__init__(dest)

        self.progress = progress
        self.files_written = 0
        self.paths_deleted = 0

    def delete_directory(
        self,
        path: str,
    ) -> None:
        super().delete_directory(path)
        self.paths_deleted += 1

    def delete_file(
        self,
        path: str,
    ) -> None:
        super().delete_file(path)
        self.paths_deleted += 1

    def _write_file(
        self,
        path: str,
        mode: Optional[str],
        fp: BinaryIO,
        length: int,
    ) -> None:
        super()._write_file(path, mode, fp, length)

        self.files_written += 1
        self.progress.set_postfix_str(path, refresh=False)
        self.progress.update(1)


class Patch(BaseCommand):
    """Bring a checkout directory up to date with a view."""

    name = 'patch'
    description = (
        'Bring a checkout directory up to date with what a view selects at '
        'a version. Without --from, the checkout is built from scratch.'
    )

    args = '<view-path> <checkout-dir> [to-version]'
    option_list = [
        Option('--from',
               dest='from_version',
               metavar='VERSION',
               default=None,
               help='The version the checkout directory is currently at.'),
        Option('--include-from',
               dest='include_from',
               metavar='PATH',
               default='',
               help='Only patch files under this path within the view.'),
        Option('--fast-export',
               dest='fast_export',
               action='store_true',
               config_key='OPTIMIZE_INITIAL_CHECKOUT',
               default=False,
               help='Copy files straight from the view when building a '
                    'checkout from scratch.'),
        Option('--no-progress',
               dest='show_progress',
               action='store_false',
               default=True,
               help='Do not show a progress bar while writing files.'),
    ]

    def initialize(self) -> None:
        """Initialize the command.

        This applies :option:`--fast-export` to the configuration.
        """
        assert self.config is not None

        if self.options.fast_export:
            self.config.merge(EngineConfig(
                config_dict={'OPTIMIZE_INITIAL_CHECKOUT': True}))

        super().initialize()

    def main(
        self,
        view_path: str,
        checkout_dir: str,
        to_version: Optional[str] = None,
    ) -> int:
        """Run the command.

        Args:
            view_path (str):
                The path to the view.

            checkout_dir (str):
                The checkout directory to update.

            to_version (str, optional):
                The version to bring the checkout to. This defaults to now.

        Returns:
            int:
            The resulting exit code.
        """
        assert self.support is not None

        settings = self.get_root_settings(view_path)

        if to_version is None:
            to_version = self.support.get_current_version()

        disable_progress = (not self.options.show_progress or
                            self.options.json_output or
                            not self.stderr_is_atty)

        with tqdm(desc='Writing files',
                  unit='file',
                  file=self.stderr.output_stream,
                  disable=disable_progress) as progress:
            sink = ProgressPatchSink(checkout_dir, progress)
            self.support.build_patch(settings,
                                     self.options.from_version,
                                     to_version,
                                     sink,
                                     include_from=self.options.include_from)

        self.stdout.write('Wrote %d files and deleted %d paths in "%s"'
                          % (sink.files_written, sink.paths_deleted,
                             checkout_dir))

        self.json.add('checkout_dir', checkout_dir)
        self.json.add('version', to_version)
        self.json.add('files_written', sink.files_written)
        self.json.add('paths_deleted', sink.paths_deleted)

        return 0
