"""Common support for writing unit tests for cleartrack."""

from __future__ import annotations

from cleartrack.testing.cleartool import ANY, FakeClearTool
from cleartrack.testing.commands import CommandTestsMixin
from cleartrack.testing.testcase import TestCase


__all__ = [
    'ANY',
    'CommandTestsMixin',
    'FakeClearTool',
    'TestCase',
]
