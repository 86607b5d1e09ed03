"""Unit tests for cleartrack.agent."""

import os
from datetime import datetime

from cleartrack.agent import (CHECKOUT_RULES_KEY,
                              ClearCaseAgent,
                              Delta,
                              DeltaKind,
                              SourceProviderKind,
                              deltas_from_modifications,
                              validate_checkout)
from cleartrack.changes import Change, ChangeType, Modification
from cleartrack.errors import ConfigInvalidError
from cleartrack.settings import RELATIVE_PATH, VcsRootSettings
from cleartrack.testing import FakeClearTool, TestCase
from cleartrack.utils.filesystem import make_tempdir


class DeltaTests(TestCase):
    """Unit tests for Delta."""

    def test_from_flags(self):
        """Testing Delta.from_flags"""
        self.assertEqual(
            Delta.from_flags(is_addition=True, is_deletion=True,
                             path='a.txt').kind,
            DeltaKind.ADDITION)
        self.assertEqual(
            Delta.from_flags(is_addition=False, is_deletion=True,
                             path='a.txt').kind,
            DeltaKind.DELETION)
        self.assertEqual(
            Delta.from_flags(is_addition=False, is_deletion=False,
                             path='a.txt').kind,
            DeltaKind.MODIFICATION)

    def test_str(self):
        """Testing Delta.__str__"""
        delta = Delta(kind=DeltaKind.MODIFICATION,
                      path='src/a.txt',
                      revision_before='src/a.txt@@/main/1',
                      revision_after='src/a.txt@@/main/2')

        self.assertEqual(
            str(delta),
            '<Delta(kind=MODIFICATION, path="src/a.txt", '
            'before=src/a.txt@@/main/1, after=src/a.txt@@/main/2)>')

    def test_deltas_from_modifications(self):
        """Testing deltas_from_modifications"""
        modifications = [
            Modification(
                date=datetime(2023, 1, 10, 10),
                version='20230110.100001',
                user='alice',
                changes=[
                    Change(type=ChangeType.DIRECTORY_ADDED,
                           relative_path='sub',
                           after_version='sub@@/main/1'),
                    Change(type=ChangeType.ADDED,
                           relative_path='sub/a.txt',
                           after_version='sub/a.txt@@/main/1'),
                ]),
            Modification(
                date=datetime(2023, 1, 10, 11),
                version='20230110.110001',
                user='bob',
                changes=[
                    Change(type=ChangeType.CHANGED,
                           relative_path='b.txt',
                           before_version='b.txt@@/main/1',
                           after_version='b.txt@@/main/2'),
                    Change(type=ChangeType.REMOVED,
                           relative_path='c.txt',
                           before_version='c.txt@@/main/3'),
                ]),
        ]

        self.assertEqual(deltas_from_modifications(modifications), [
            Delta(kind=DeltaKind.ADDITION,
                  path='sub/a.txt',
                  revision_after='sub/a.txt@@/main/1'),
            Delta(kind=DeltaKind.MODIFICATION,
                  path='b.txt',
                  revision_before='b.txt@@/main/1',
                  revision_after='b.txt@@/main/2'),
            Delta(kind=DeltaKind.DELETION,
                  path='c.txt',
                  revision_before='c.txt@@/main/3'),
        ])


class ValidateCheckoutTests(TestCase):
    """Unit tests for validate_checkout."""

    def setUp(self):
        super().setUp()

        self.settings = VcsRootSettings(view_path='/view/vobs/proj',
                                        relative_path='vobs/proj')

    def test_valid(self):
        """Testing validate_checkout with a matching checkout"""
        for rules in (None, [], ['+:.'], ['  ', '.=>.']):
            self.assertEqual(
                validate_checkout(self.settings, rules, 'vobs/proj',
                                  work_dir='/work'),
                [])

        self.assertEqual(
            validate_checkout(self.settings, None, '/work/vobs/proj/',
                              work_dir='/work'),
            [])

    def test_no_relative_path(self):
        """Testing validate_checkout with no path within the view"""
        settings = VcsRootSettings(view_path='/view/vobs/proj')

        self.assertEqual(
            validate_checkout(settings, None, '/work', work_dir='/work'),
            [])

    def test_unsupported_rules(self):
        """Testing validate_checkout with custom checkout rules"""
        with self.assertRaises(ConfigInvalidError) as ctx:
            validate_checkout(self.settings, ['+:src=>src'], 'vobs/proj',
                              work_dir='/work')

        self.assertEqual(
            [key for key, message in ctx.exception.invalid_properties],
            [CHECKOUT_RULES_KEY])

    def test_mismatched_directory(self):
        """Testing validate_checkout with a mismatched checkout directory"""
        with self.assertRaisesMessage(
                ConfigInvalidError,
                'The checkout directory "other" of "clearcase: '
                '/view/vobs/proj" must match the path within the view '
                '"vobs/proj"'):
            validate_checkout(self.settings, None, 'other', work_dir='/work')

    def test_disable_validation_errors(self):
        """Testing validate_checkout with validation errors disabled"""
        problems = validate_checkout(self.settings, ['-:docs'], 'other',
                                     work_dir='/work',
                                     disable_validation_errors=True)

        self.assertEqual(
            [key for key, message in problems],
            [CHECKOUT_RULES_KEY, RELATIVE_PATH])


class ClearCaseAgentTests(TestCase):
    """Unit tests for ClearCaseAgent."""

    def test_can_run(self):
        """Testing ClearCaseAgent.can_run keeps the first result"""
        clear_tool = FakeClearTool()
        clear_tool.add_response(['hostinfo'], 'client: agent1\n')
        agent = ClearCaseAgent(clear_tool)

        self.assertTrue(agent.can_run())
        self.assertTrue(agent.can_run())
        self.assertEqual(clear_tool.commands, [['hostinfo']])

    def test_can_run_missing(self):
        """Testing ClearCaseAgent.can_run without cleartool"""
        clear_tool = FakeClearTool()
        clear_tool.add_response(['hostinfo'],
                                stderr='CreateProcess error=2, The system '
                                       'cannot find the file specified',
                                exit_code=1)

        self.assertFalse(ClearCaseAgent(clear_tool).can_run())

    def test_can_run_failure(self):
        """Testing ClearCaseAgent.can_run with a failing cleartool"""
        clear_tool = FakeClearTool()
        clear_tool.add_response(['hostinfo'],
                                stderr='cleartool: Error: No license\n',
                                exit_code=1)

        self.assertFalse(ClearCaseAgent(clear_tool).can_run())

    def test_prepare_checkout_convention(self):
        """Testing ClearCaseAgent.prepare_checkout with the convention
        provider
        """
        agent = ClearCaseAgent(FakeClearTool())
        settings = VcsRootSettings(view_path='/view/vobs/proj',
                                   relative_path='vobs/proj')

        self.assertEqual(
            agent.prepare_checkout(settings, None, '/work/vobs/proj',
                                   work_dir='/work'),
            '/work')

        with self.assertRaises(ConfigInvalidError):
            agent.prepare_checkout(settings, None, '/work/other',
                                   work_dir='/work')

    def test_prepare_checkout_link(self):
        """Testing ClearCaseAgent.prepare_checkout with the link provider"""
        agent = ClearCaseAgent(FakeClearTool(),
                               provider_kind=SourceProviderKind.LINK)
        settings = VcsRootSettings(view_path='/view/vobs/proj')

        self.assertEqual(
            agent.prepare_checkout(settings, ['+:src'], '/work/checkout',
                                   work_dir='/work'),
            '/work/checkout')

    def test_publish_links(self):
        """Testing ClearCaseAgent.publish with the link provider"""
        view_path = self.make_view(files={
            'src/a.txt': b'a',
            'b.txt': b'b',
        })
        view_path = os.path.join(view_path, 'vobs', 'proj')
        publish_to = make_tempdir()

        os.symlink(os.path.join(view_path, 'gone.txt'),
                   os.path.join(publish_to, 'gone.txt'))

        agent = ClearCaseAgent(FakeClearTool(),
                               provider_kind=SourceProviderKind.LINK)
        agent.publish(
            view_path,
            [
                Delta(kind=DeltaKind.ADDITION, path='src/a.txt'),
                Delta(kind=DeltaKind.MODIFICATION, path='b.txt'),
                Delta(kind=DeltaKind.DELETION, path='gone.txt'),
            ],
            publish_to)

        self.assertEqual(os.readlink(os.path.join(publish_to, 'src',
                                                  'a.txt')),
                         os.path.join(view_path, 'src', 'a.txt'))
        self.assertEqual(os.readlink(os.path.join(publish_to, 'b.txt')),
                         os.path.join(view_path, 'b.txt'))
        self.assertFalse(os.path.lexists(os.path.join(publish_to,
                                                      'gone.txt')))

    def test_publish_convention(self):
        """Testing ClearCaseAgent.publish with the convention provider"""
        publish_to = make_tempdir()

        ClearCaseAgent(FakeClearTool()).publish(
            '/view/vobs/proj',
            [Delta(kind=DeltaKind.ADDITION, path='a.txt')],
            publish_to)

        self.assertEqual(os.listdir(publish_to), [])
