"""Base test cases for cleartrack unit tests."""

from __future__ import annotations

import os
import re
import unittest
from typing import Dict, Optional, TYPE_CHECKING, Type

from cleartrack.utils.filesystem import cleanup_tempfiles, make_tempdir

if TYPE_CHECKING:
    from unittest.case import _AssertRaisesContext


class TestCase(unittest.TestCase):
    """The base class for cleartrack test cases.

    This provides helpful utility functions, environment management, and
    better docstrings to help craft unit tests for cleartrack functionality.
    """

    #: Regex for matching consecutive whitespace characters.
    ws_re = re.compile(r'\s+')

    maxDiff = None

    #: Whether individual unit tests need a new temporary HOME directory.
    #:
    #: If set, a directory will be created at test startup, and will be
    #: set as the home directory.
    needs_temp_home: bool = False

    ######################
    # Instance variables #
    ######################

    #: The current directory before the current test was run.
    _old_cwd: str

    #: The home directory before the current test was run.
    old_home: Optional[str]

    def setUp(self) -> None:
        """Set up a single test.

        This will store some initial state for tests and optionally create a
        new current HOME directory to run the tests within.
        """
        super().setUp()

        self._old_cwd = os.getcwd()
        self.old_home = os.environ.get('HOME')

        if self.needs_temp_home:
            home_dir = make_tempdir()
            os.environ['HOME'] = home_dir

            # Run within the new home directory, so no .cleartrackrc from
            # the source tree is picked up.
            os.chdir(home_dir)

    def tearDown(self) -> None:
        """Tear down a single test.

        This will clean up any temporary files and directories, and restore
        the current directory and HOME directory.
        """
        super().tearDown()

        os.chdir(self._old_cwd)
        cleanup_tempfiles()

        if self.old_home:
            os.environ['HOME'] = self.old_home

    def shortDescription(self) -> Optional[str]:
        """Returns the description of the current test.

        This changes the default behavior to replace all newlines with spaces,
        allowing a test description to span lines. It should still be kept
        short, though.

        Returns:
            str:
            The descriptive text for the current unit test.
        """
        doc = self._testMethodDoc

        if doc is not None:
            doc = doc.split('\n\n', 1)[0]
            doc = self.ws_re.sub(' ', doc).strip()

        return doc

    def make_view(
        self,
        vob_path: str = 'vobs/proj',
        files: Optional[Dict[str, bytes]] = None,
    ) -> str:
        """Create a directory standing in for a snapshot view.

        Args:
            vob_path (str, optional):
                The path of the tracked directory within the view root.

            files (dict, optional):
                Files to create in the tracked directory, keyed by path
                relative to it.

        Returns:
            str:
            The view root. The tracked directory is ``vob_path`` within it.
        """
        view_root = os.path.realpath(make_tempdir())
        view_path = os.path.join(view_root, *vob_path.split('/'))
        os.makedirs(view_path)

        for path, content in (files or {}).items():
            full_path = os.path.join(view_path, *path.split('/'))
            os.makedirs(os.path.dirname(full_path), exist_ok=True)

            with open(full_path, 'wb') as fp:
                fp.write(content)

        return view_root

    def assertRaisesMessage(
        self,
        expected_exception: Type[Exception],
        expected_message: str,
    ) -> _AssertRaisesContext[Exception]:
        """Assert that a call raises an exception with the given message.

        Args:
            expected_exception (type):
                The type of exception that's expected to be raised.

            expected_message (str):
                The expected exception message.

        Raises:
            AssertionError:
                The assertion failure, if the exception and message isn't
                raised.
        """
        return self.assertRaisesRegex(expected_exception,
                                      re.escape(expected_message))
