"""Unit tests for cleartrack.changes."""

import os
from datetime import datetime

from cleartrack.changes import (Change,
                                ChangeType,
                                CommentHolder,
                                ModificationKey,
                                collect_changes,
                                diff_directory)
from cleartrack.connection import ChildKind, Connection
from cleartrack.errors import InternalError
from cleartrack.history import HistoryElement, HistoryKind
from cleartrack.testing import FakeClearTool, TestCase


class CommentHolderTests(TestCase):
    """Unit tests for CommentHolder."""

    def test_str(self):
        """Testing CommentHolder.__str__"""
        holder = CommentHolder()
        holder.update('fix_bug', 'Fixed it', 'a.txt@@/main/2')
        holder.update('fix_bug', 'Fixed it', 'b.txt@@/main/4')
        holder.update(None, 'Also this', None)

        self.assertEqual(str(holder),
                         'fix_bug\n'
                         'Fixed it\n'
                         'Also this\n'
                         '\n'
                         'a.txt@@/main/2\n'
                         'b.txt@@/main/4')

    def test_str_versions_only(self):
        """Testing CommentHolder.__str__ with only versions"""
        holder = CommentHolder()
        holder.update(None, None, 'a.txt@@/main/2')

        self.assertEqual(str(holder), 'a.txt@@/main/2')
        self.assertEqual(str(CommentHolder()), '')


class ModificationKeyTests(TestCase):
    """Unit tests for ModificationKey."""

    def test_eq(self):
        """Testing ModificationKey equality"""
        date = datetime(2023, 1, 10, 10)

        self.assertEqual(ModificationKey(date, 'alice'),
                         ModificationKey(date, 'alice'))
        self.assertEqual(hash(ModificationKey(date, 'alice')),
                         hash(ModificationKey(date, 'alice')))
        self.assertNotEqual(ModificationKey(date, 'alice'),
                            ModificationKey(date, 'bob'))
        self.assertNotEqual(
            ModificationKey(date, 'alice'),
            ModificationKey(datetime(2023, 1, 10, 11), 'alice'))


class ChangesTestCase(TestCase):
    """Base class for tests collecting changes from a scripted view."""

    config_spec = 'element * /main/LATEST\n'

    def setUp(self):
        super().setUp()

        view_root = self.make_view()
        self.view_path = os.path.join(view_root, 'vobs', 'proj')

        self.clear_tool = FakeClearTool()
        self.clear_tool.add_view(self.config_spec, view_root)

    def path(self, *parts):
        return os.path.join(self.view_path, *parts)

    def connect(self):
        connection = Connection(self.view_path,
                                clear_tool=self.clear_tool,
                                case_insensitive=False)
        self.addCleanup(connection.dispose)

        return connection

    def history(self, *records):
        """Script the history, given oldest first."""
        self.clear_tool.add_history(self.view_path, list(reversed(records)))


class DiffDirectoryTests(ChangesTestCase):
    """Unit tests for diff_directory."""

    def test_diff(self):
        """Testing diff_directory"""
        clear_tool = self.clear_tool
        clear_tool.add_listing(self.view_path, '/main/1', [
            ('kept.txt', '/main/1', False),
            ('gone.txt', '/main/1', False),
            ('olddir', '/main/1', True),
            ('swap', '/main/1', False),
        ])
        clear_tool.add_listing(self.view_path, '/main/2', [
            ('kept.txt', '/main/3', False),
            ('new.txt', '/main/1', False),
            ('swap', '/main/1', True),
            ('newdir', '/main/1', True),
        ])
        clear_tool.add_listing(self.path('newdir'), '/main/1', [
            ('inner.txt', '/main/1', False),
        ])
        clear_tool.add_listing(self.path('swap'), '/main/1', [])

        element = HistoryElement(object_name=self.view_path,
                                 object_version='/main/2',
                                 previous_version='/main/1',
                                 kind=HistoryKind.DIR,
                                 date=datetime(2023, 1, 10),
                                 user='alice')
        connection = self.connect()

        self.assertEqual(
            [
                (change_type, child.name, child.type)
                for change_type, child in diff_directory(connection,
                                                         element)
            ],
            [
                (ChangeType.REMOVED, 'gone.txt', ChildKind.FILE),
                (ChangeType.DIRECTORY_REMOVED, 'olddir', ChildKind.DIR),
                (ChangeType.REMOVED, 'swap', ChildKind.FILE),
                (ChangeType.ADDED, 'new.txt', ChildKind.FILE),
                (ChangeType.DIRECTORY_ADDED, 'swap', ChildKind.DIR),
                (ChangeType.DIRECTORY_ADDED, 'newdir', ChildKind.DIR),
            ])
        self.assertEqual(
            [
                (change_type, child.name)
                for change_type, child in diff_directory(connection,
                                                         element,
                                                         recursive=True)
                if change_type.is_file
            ],
            [
                (ChangeType.REMOVED, 'gone.txt'),
                (ChangeType.REMOVED, 'swap'),
                (ChangeType.ADDED, 'new.txt'),
                (ChangeType.ADDED, 'inner.txt'),
            ])

    def test_diff_without_predecessor(self):
        """Testing diff_directory with the first version of a directory"""
        self.clear_tool.add_listing(self.view_path, '/main/0', [
            ('a.txt', '/main/1', False),
        ])

        element = HistoryElement(object_name=self.view_path,
                                 object_version='/main/0',
                                 previous_version=None,
                                 kind=HistoryKind.DIR,
                                 date=datetime(2023, 1, 10),
                                 user='alice')

        self.assertEqual(
            [
                (change_type, child.name)
                for change_type, child in diff_directory(self.connect(),
                                                         element)
            ],
            [(ChangeType.ADDED, 'a.txt')])


class CollectChangesTests(ChangesTestCase):
    """Unit tests for collect_changes."""

    def setUp(self):
        super().setUp()

        self.clear_tool.add_version_tree(self.path('a.txt'), [
            ('20230109.090000', '/main/1'),
            ('20230110.100000', '/main/2'),
            ('20230110.110000', '/main/3'),
        ])
        self.clear_tool.add_version_tree(self.path('b.txt'), [
            ('20230110.100000', '/main/1'),
            ('20230110.100000', '/main/2'),
        ])

    def test_empty(self):
        """Testing collect_changes with no history"""
        self.history()

        self.assertEqual(
            collect_changes(self.connect(), '20230109.000000',
                            '20230111.000000'),
            [])

    def test_single_edit(self):
        """Testing collect_changes with a single edit"""
        a_path = self.path('a.txt')
        self.history(
            ('20230109.090000', a_path, '/main/1', '/main/0', 'checkin',
             'version', 'alice', '', 'Add a'),
            ('20230110.100000', a_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', 'fix_bug', 'Edit a'),
        )

        modifications = collect_changes(self.connect(), '20230109.000000',
                                        '20230110.103000')

        self.assertEqual(len(modifications), 1)

        modification = modifications[0]
        self.assertEqual(modification.date, datetime(2023, 1, 10, 10))
        self.assertEqual(modification.version, '20230110.100001')
        self.assertEqual(modification.user, 'alice')
        self.assertEqual(modification.changes, [
            Change(type=ChangeType.CHANGED,
                   relative_path='a.txt',
                   before_version='a.txt@@/main/1',
                   after_version='a.txt@@/main/2'),
        ])
        self.assertEqual(modification.comment,
                         'fix_bug\nEdit a\n\na.txt@@/main/2')

    def test_grouping(self):
        """Testing collect_changes groups records by time and user"""
        a_path = self.path('a.txt')
        b_path = self.path('b.txt')
        self.history(
            ('20230110.100000', a_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', 'Shared'),
            ('20230110.100000', b_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', 'Shared'),
            ('20230110.110000', a_path, '/main/3', '/main/2', 'checkin',
             'version', 'bob', '', 'Later'),
        )

        modifications = collect_changes(self.connect(), '20230110.000000',
                                        '20230111.000000')

        self.assertEqual(
            [
                (modification.user,
                 [change.relative_path for change in modification.changes],
                 modification.comment)
                for modification in modifications
            ],
            [
                ('alice', ['a.txt', 'b.txt'],
                 'Shared\n\na.txt@@/main/2\nb.txt@@/main/2'),
                ('bob', ['a.txt'], 'Later\n\na.txt@@/main/3'),
            ])

    def test_empty_range(self):
        """Testing collect_changes with the same starting and ending
        version
        """
        a_path = self.path('a.txt')
        self.history(
            ('20230110.100000', a_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', ''),
        )

        self.assertEqual(
            collect_changes(self.connect(), '20230110.100000',
                            '20230110.100000'),
            [])

    def test_back_to_back_ranges(self):
        """Testing collect_changes reports a commit on the boundary between
        two ranges once
        """
        a_path = self.path('a.txt')
        self.history(
            ('20230110.100000', a_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', ''),
            ('20230110.110000', a_path, '/main/3', '/main/2', 'checkin',
             'version', 'alice', '', ''),
        )

        first = collect_changes(self.connect(), '20230110.000000',
                                '20230110.100000')
        second = collect_changes(self.connect(), '20230110.100000',
                                 '20230110.120000')

        self.assertEqual([modification.version for modification in first],
                         [])
        self.assertEqual([modification.version for modification in second],
                         ['20230110.100001', '20230110.110001'])

    def test_range_ends_after_reported_version(self):
        """Testing collect_changes includes a commit when collecting up to
        the version reported for it
        """
        a_path = self.path('a.txt')
        self.history(
            ('20230110.100000', a_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', ''),
        )

        modifications = collect_changes(self.connect(), '20230110.000000',
                                        '20230110.100001')

        self.assertEqual([modification.version
                          for modification in modifications],
                         ['20230110.100001'])
        self.assertEqual(
            collect_changes(self.connect(), '20230110.100001',
                            '20230110.120000'),
            [])

    def test_versions_after_target(self):
        """Testing collect_changes skips versions the view doesn't select
        yet
        """
        a_path = self.path('a.txt')
        self.history(
            ('20230110.100000', a_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', ''),
            ('20230110.110000', a_path, '/main/3', '/main/2', 'checkin',
             'version', 'alice', '', ''),
        )

        modifications = collect_changes(self.connect(), '20230110.000000',
                                        '20230110.103000')

        self.assertEqual([modification.version
                          for modification in modifications],
                         ['20230110.100001'])

    def test_destroyed(self):
        """Testing collect_changes ignores destroyed versions"""
        self.history(
            ('20230110.100000', self.path('b.txt'), '', '', 'rmver',
             'version', 'alice', '', 'Destroyed version "/main/3"'),
        )

        self.assertEqual(
            collect_changes(self.connect(), '20230110.000000',
                            '20230111.000000'),
            [])

    def test_invalid_from_version(self):
        """Testing collect_changes with an invalid starting version"""
        with self.assertRaisesMessage(InternalError,
                                      '"last week" is not a valid version'):
            collect_changes(self.connect(), 'last week', '20230111.000000')


class CollectDirectoryChangesTests(ChangesTestCase):
    """Unit tests for collect_changes with directory versions."""

    def setUp(self):
        super().setUp()

        clear_tool = self.clear_tool
        clear_tool.add_version_tree(self.view_path, [
            ('20230109.090000', '/main/1'),
            ('20230110.100000', '/main/2'),
            ('20230110.110000', '/main/3'),
        ])
        clear_tool.add_listing(self.view_path, '/main/1', [
            ('a.txt', '/main/1', False),
        ])
        clear_tool.add_listing(self.view_path, '/main/2', [
            ('a.txt', '/main/1', False),
            ('sub', '/main/1', True),
            ('b.txt', '/main/1', False),
        ])
        clear_tool.add_listing(self.view_path, '/main/3', [
            ('sub', '/main/1', True),
            ('b.txt', '/main/1', False),
        ])
        clear_tool.add_listing(self.path('sub'), '/main/1', [
            ('c.txt', '/main/1', False),
        ])

        for path in (self.path('a.txt'),
                     self.path('b.txt'),
                     self.path('sub'),
                     self.path('sub', 'c.txt')):
            clear_tool.add_version_tree(path, [
                ('20230109.090000', '/main/1'),
            ])

    def test_directory_added(self):
        """Testing collect_changes with an added directory"""
        self.history(
            ('20230110.100000', self.view_path, '/main/2', '/main/1',
             'checkin', 'directory version', 'bob', '', 'Add things'),
            ('20230110.100000', self.path('b.txt'), '/main/1', '/main/0',
             'checkin', 'version', 'bob', '', 'Add things'),
        )

        modifications = collect_changes(self.connect(), '20230110.000000',
                                        '20230110.103000')

        self.assertEqual(len(modifications), 1)
        self.assertEqual(modifications[0].changes, [
            Change(type=ChangeType.DIRECTORY_ADDED,
                   relative_path='sub',
                   after_version='sub@@/main/1'),
            Change(type=ChangeType.ADDED,
                   relative_path='sub/c.txt',
                   after_version='sub/c.txt@@/main/1'),
            Change(type=ChangeType.ADDED,
                   relative_path='b.txt',
                   after_version='b.txt@@/main/1'),
        ])

    def test_directory_added_after_contents(self):
        """Testing collect_changes with the contents of an added directory
        checked in before the directory
        """
        self.clear_tool.add_listing(self.path('sub'), '/main/0', [])
        self.history(
            ('20230110.100000', self.path('sub', 'c.txt'), '/main/1',
             '/main/0', 'checkin', 'version', 'bob', '', 'Add things'),
            ('20230110.100000', self.path('sub'), '/main/1', '/main/0',
             'checkin', 'directory version', 'bob', '', 'Add things'),
            ('20230110.100000', self.view_path, '/main/2', '/main/1',
             'checkin', 'directory version', 'bob', '', 'Add things'),
        )

        modifications = collect_changes(self.connect(), '20230110.000000',
                                        '20230110.103000')

        self.assertEqual(len(modifications), 1)
        self.assertEqual(modifications[0].changes, [
            Change(type=ChangeType.DIRECTORY_ADDED,
                   relative_path='sub',
                   after_version='sub@@/main/1'),
            Change(type=ChangeType.ADDED,
                   relative_path='sub/c.txt',
                   after_version='sub/c.txt@@/main/1'),
            Change(type=ChangeType.ADDED,
                   relative_path='b.txt',
                   after_version='b.txt@@/main/1'),
        ])

    def test_file_removed(self):
        """Testing collect_changes with a removed file"""
        self.history(
            ('20230110.110000', self.view_path, '/main/3', '/main/2',
             'checkin', 'directory version', 'bob', '', 'Remove a'),
        )

        modifications = collect_changes(self.connect(), '20230110.103000',
                                        '20230111.000000')

        self.assertEqual(modifications[0].changes, [
            Change(type=ChangeType.REMOVED,
                   relative_path='a.txt',
                   before_version='a.txt@@/main/1'),
        ])
        self.assertEqual(modifications[0].comment,
                         'Remove a\n\na.txt@@/main/1')


class LoadRuleChangesTests(ChangesTestCase):
    """Unit tests for collect_changes with load rules."""

    config_spec = 'element * /main/LATEST\nload /vobs/proj/src\n'

    def test_outside_load_rules(self):
        """Testing collect_changes skips elements outside the load rules"""
        src_path = self.path('src', 'a.txt')
        docs_path = self.path('docs', 'b.txt')

        self.clear_tool.add_version_tree(src_path, [
            ('20230109.090000', '/main/1'),
            ('20230110.100000', '/main/2'),
        ])
        self.history(
            ('20230110.100000', src_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', ''),
            ('20230110.100000', docs_path, '/main/2', '/main/1', 'checkin',
             'version', 'alice', '', ''),
        )

        modifications = collect_changes(self.connect(), '20230110.000000',
                                        '20230111.000000')

        self.assertEqual(
            [change.relative_path for change in modifications[0].changes],
            ['src/a.txt'])
