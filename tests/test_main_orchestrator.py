#!/usr/bin/env python3
"""
Unit tests for the SyncOrchestrator and CLI entry point.
"""

import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crm_profile_sync.config import ConfigurationError
from crm_profile_sync.crm.base import CRMTransportError
from crm_profile_sync.crm.models import DirectoryUser, PageFailure, PageListing, PagingSection
from crm_profile_sync.main import SyncOrchestrator, main


def sample_config():
    return {
        'crm': {
            'api_uri': 'https://api.crm.test/',
            'access_token': 'token',
            'profile_url_property_name': 'forums_member',
            'burst_size': 5,
            'burst_delay_seconds': 0,
            'caching_timeout_minutes': 30,
            'page_size': 10
        },
        'forum': {'base_uri': 'https://forums.example.com/'},
        'avatar': {'timeout_seconds': 5},
        'logging': {},
        'error_handling': {'max_retries': 0, 'retry_wait_seconds': 0}
    }


@patch('crm_profile_sync.main.setup_logging')
class TestSyncOrchestrator(unittest.TestCase):
    """Test cases for SyncOrchestrator."""

    def test_setup_wires_clients(self, mock_logging):
        orchestrator = SyncOrchestrator(config=sample_config())
        orchestrator.setup()

        self.assertEqual(orchestrator.synchronizer.property_name, 'forums_member')
        self.assertIs(orchestrator.synchronizer.users_client, orchestrator.users_client)
        self.assertEqual(orchestrator.users_client.cache.scheduler.burst_size, 5)
        mock_logging.assert_called_once_with({})

    def test_run_success(self, mock_logging):
        orchestrator = SyncOrchestrator(config=sample_config())

        with patch('crm_profile_sync.main.ProfileUrlSynchronizer') as mock_sync_class:
            mock_sync_class.return_value.create_or_update_with_profile_url.side_effect = [
                [DirectoryUser(id='1')], []
            ]
            exit_code = orchestrator.run(['a@example.com', 'b@example.com'])

        self.assertEqual(exit_code, 0)
        self.assertEqual(orchestrator.sync_stats['emails_processed'], 2)
        self.assertEqual(orchestrator.sync_stats['contacts_updated'], 1)

    def test_run_partial_failure(self, mock_logging):
        orchestrator = SyncOrchestrator(config=sample_config())

        with patch('crm_profile_sync.main.ProfileUrlSynchronizer') as mock_sync_class:
            mock_sync_class.return_value.create_or_update_with_profile_url.side_effect = [
                CRMTransportError('HTTP 500', status_code=500), []
            ]
            exit_code = orchestrator.run(['a@example.com', 'b@example.com'])

        self.assertEqual(exit_code, 1)
        self.assertEqual(orchestrator.sync_stats['emails_failed'], 1)

    def test_run_configuration_error(self, mock_logging):
        orchestrator = SyncOrchestrator(config_path='/nonexistent/config.yaml')

        self.assertEqual(orchestrator.run(['a@example.com']), 2)

    def test_run_unexpected_error(self, mock_logging):
        orchestrator = SyncOrchestrator(config=sample_config())

        with patch('crm_profile_sync.main.ProfileUrlSynchronizer') as mock_sync_class:
            mock_sync_class.return_value.create_or_update_with_profile_url.side_effect = KeyError('x')
            self.assertEqual(orchestrator.run(['a@example.com']), 4)

    def test_health_check_healthy(self, mock_logging):
        orchestrator = SyncOrchestrator(config=sample_config())
        listing = PageListing(users=[], pages=PagingSection(total_pages=3), total_count=25)

        with patch('crm_profile_sync.main.CRMUsersClient') as mock_client_class:
            mock_client_class.return_value.fetch_page.return_value = listing
            status = orchestrator.health_check()

        self.assertEqual(status['status'], 'healthy')
        self.assertEqual(status['checks']['crm']['message'], '25 users in 3 pages')

    def test_health_check_crm_down(self, mock_logging):
        orchestrator = SyncOrchestrator(config=sample_config())

        with patch('crm_profile_sync.main.CRMUsersClient') as mock_client_class:
            mock_client_class.return_value.fetch_page.return_value = PageFailure(
                page=1, error=CRMTransportError('down'))
            status = orchestrator.health_check()

        self.assertEqual(status['status'], 'unhealthy')
        self.assertEqual(status['checks']['crm']['status'], 'fail')

    def test_health_check_bad_config(self, mock_logging):
        status = SyncOrchestrator(config_path='/nonexistent/config.yaml').health_check()

        self.assertEqual(status['status'], 'unhealthy')
        self.assertEqual(status['checks']['configuration']['status'], 'fail')


class TestMain(unittest.TestCase):
    """Test cases for the CLI."""

    @patch('crm_profile_sync.main.SyncOrchestrator')
    def test_sync_emails(self, mock_orchestrator_class):
        mock_orchestrator_class.return_value.run.return_value = 0

        with patch.object(sys, 'argv', ['crm-profile-sync', '-c', 'c.yaml', '-e', 'a@x.com', '-e', 'b@x.com']):
            with self.assertRaises(SystemExit) as ctx:
                main()

        self.assertEqual(ctx.exception.code, 0)
        mock_orchestrator_class.assert_called_once_with(config_path='c.yaml')
        mock_orchestrator_class.return_value.run.assert_called_once_with(['a@x.com', 'b@x.com'])

    def test_requires_email(self):
        with patch.object(sys, 'argv', ['crm-profile-sync']):
            with patch('sys.stderr'):
                with self.assertRaises(SystemExit) as ctx:
                    main()

        self.assertEqual(ctx.exception.code, 2)

    @patch('crm_profile_sync.main.SyncOrchestrator')
    def test_health_check_exit_code(self, mock_orchestrator_class):
        mock_orchestrator_class.return_value.health_check.return_value = {'status': 'unhealthy'}

        with patch.object(sys, 'argv', ['crm-profile-sync', '--health-check']):
            with patch('builtins.print'):
                with self.assertRaises(SystemExit) as ctx:
                    main()

        self.assertEqual(ctx.exception.code, 1)

    @patch('crm_profile_sync.main.load_config', side_effect=ConfigurationError('missing'))
    @patch('crm_profile_sync.main.GravatarProvider')
    def test_avatar_without_config(self, mock_provider_class, mock_load_config):
        mock_provider_class.return_value.get_avatar_url.return_value = 'https://secure.gravatar.com/avatar/x'

        with patch.object(sys, 'argv', ['crm-profile-sync', '--avatar', 'a@x.com']):
            with patch('builtins.print') as mock_print:
                with self.assertRaises(SystemExit):
                    main()

        mock_provider_class.return_value.get_avatar_url.assert_called_once_with('a@x.com', timeout_seconds=5)
        mock_print.assert_called_once_with('https://secure.gravatar.com/avatar/x')


if __name__ == '__main__':
    unittest.main()
