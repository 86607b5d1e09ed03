"""Unit tests for cleartrack.version_tree."""

from datetime import datetime

from cleartrack.errors import InternalError
from cleartrack.testing import TestCase
from cleartrack.version_tree import Version, VersionTree


def _record(date, name, predecessor='', labels=''):
    return '%s#--#%s#--#%s#--#%s#==#' % (date, name, predecessor, labels)


class VersionTests(TestCase):
    """Unit tests for Version."""

    def test_parse(self):
        """Testing Version.parse"""
        version = Version.parse('/main/dev/3')

        self.assertEqual(version.branch_path, '/main/dev')
        self.assertEqual(version.ordinal, 3)
        self.assertEqual(str(version), '/main/dev/3')

    def test_parse_windows(self):
        """Testing Version.parse with backslash separators"""
        version = Version.parse('\\main\\3')

        self.assertEqual(version.branch_path, '\\main')
        self.assertEqual(version.ordinal, 3)

    def test_parse_invalid(self):
        """Testing Version.parse with an invalid version"""
        for name in ('/main/LATEST', 'main', '/main/CHECKEDOUT'):
            with self.assertRaises(InternalError):
                Version.parse(name)

    def test_ordering(self):
        """Testing Version ordering by branch, then numerically"""
        versions = [
            Version.parse('/main/10'),
            Version.parse('/main/dev/1'),
            Version.parse('/main/2'),
        ]

        self.assertEqual([str(version) for version in sorted(versions)],
                         ['/main/2', '/main/10', '/main/dev/1'])

    def test_equality_ignores_metadata(self):
        """Testing Version equality ignores dates and labels"""
        self.assertEqual(
            Version.parse('/main/2', labels=('REL_1',)),
            Version.parse('/main/2', date=datetime(2023, 1, 1)))


class VersionTreeTests(TestCase):
    """Unit tests for VersionTree."""

    def setUp(self):
        super().setUp()

        self.tree = VersionTree.from_lshistory([
            _record('20230105.100000', '/main/dev/2', '/main/dev/1'),
            _record('20230104.100000', '/main/dev/1', '/main/dev/0'),
            _record('20230103.100000', '/main/dev'),
            _record('20230103.090000', '/main/dev/0', '/main/1'),
            _record('20230102.100000', '/main/2', '/main/1', 'REL_2 BL_2'),
            _record('20230101.100000', '/main/1', '/main/0', 'REL_1'),
            _record('20230101.090000', '/main/0'),
            _record('20230101.090000', '', ''),
        ])

    def test_from_lshistory(self):
        """Testing VersionTree.from_lshistory skips non-version records"""
        self.assertEqual(len(self.tree), 6)
        self.assertEqual(self.tree.branches, ['/main', '/main/dev'])
        self.assertEqual(
            [str(version) for version in self.tree.versions_on('/main')],
            ['/main/0', '/main/1', '/main/2'])

    def test_from_lshistory_split_lines(self):
        """Testing VersionTree.from_lshistory with records split on lines"""
        tree = VersionTree.from_lshistory([
            '20230101.100000#--#/main/1#--#',
            '#--##==#',
        ])

        self.assertIsNotNone(tree.find('/main/1'))

    def test_from_lshistory_invalid(self):
        """Testing VersionTree.from_lshistory with malformed records"""
        with self.assertRaises(InternalError):
            VersionTree.from_lshistory(['garbage#==#'])

        with self.assertRaises(InternalError):
            VersionTree.from_lshistory([_record('yesterday', '/main/1')])

    def test_find(self):
        """Testing VersionTree.find"""
        version = self.tree.find('/main/2')

        self.assertEqual(version.date, datetime(2023, 1, 2, 10))
        self.assertEqual(version.labels, ('REL_2', 'BL_2'))
        self.assertEqual(version.predecessor, '/main/1')
        self.assertIsNone(self.tree.find('/main/3'))

    def test_find_label(self):
        """Testing VersionTree.find_label"""
        self.assertEqual(str(self.tree.find_label('BL_2')), '/main/2')
        self.assertIsNone(self.tree.find_label('REL_3'))

    def test_find_branches(self):
        """Testing VersionTree.find_branches"""
        self.assertEqual(self.tree.find_branches('dev'), ['/main/dev'])
        self.assertEqual(self.tree.find_branches('main'), ['/main'])
        self.assertEqual(self.tree.find_branches('other'), [])

    def test_latest_before(self):
        """Testing VersionTree.latest_before"""
        self.assertEqual(str(self.tree.latest_before('/main')), '/main/2')
        self.assertEqual(
            str(self.tree.latest_before('/main/dev',
                                        datetime(2023, 1, 4, 12))),
            '/main/dev/1')
        self.assertIsNone(self.tree.latest_before('/main',
                                                  datetime(2022, 12, 31)))
        self.assertIsNone(self.tree.latest_before('/main/other'))

    def test_latest_before_same_time(self):
        """Testing VersionTree.latest_before with versions at the same time"""
        tree = VersionTree([
            Version.parse('/main/1', date=datetime(2023, 1, 1)),
            Version.parse('/main/2', date=datetime(2023, 1, 1)),
        ])

        self.assertEqual(str(tree.latest_before('/main',
                                                datetime(2023, 1, 1))),
                         '/main/2')

    def test_predecessor(self):
        """Testing VersionTree.predecessor"""
        self.assertEqual(
            str(self.tree.predecessor(self.tree.find('/main/dev/0'))),
            '/main/1')
        self.assertIsNone(self.tree.predecessor(self.tree.find('/main/0')))

    def test_predecessor_without_record(self):
        """Testing VersionTree.predecessor without a recorded predecessor"""
        tree = VersionTree([
            Version.parse('/main/1'),
            Version.parse('/main/3'),
        ])

        self.assertEqual(str(tree.predecessor(tree.find('/main/3'))),
                         '/main/1')

    def test_is_under(self):
        """Testing VersionTree.is_under"""
        version = self.tree.find('/main/dev/2')

        self.assertTrue(self.tree.is_under(version, '/main'))
        self.assertTrue(self.tree.is_under(version, '/main/dev/'))
        self.assertFalse(self.tree.is_under(self.tree.find('/main/2'),
                                            '/main/dev'))
