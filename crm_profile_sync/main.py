"""
Command line entry point for CRM Profile Sync.

Wires configuration, logging and the clients together and runs the profile
URL sync for one or more e-mail addresses.
"""

import sys
import json
import logging
import argparse
from datetime import datetime
from typing import Dict, Any, List, Optional

from crm_profile_sync.avatar import GravatarProvider
from crm_profile_sync.config import load_config, ConfigurationError
from crm_profile_sync.crm.base import CRMAPIError
from crm_profile_sync.crm.models import PageFailure, ViewCriteria
from crm_profile_sync.crm.users_client import CRMUsersClient
from crm_profile_sync.forum_client import ForumClient
from crm_profile_sync.logging_setup import setup_logging
from crm_profile_sync.synchronizer import ProfileUrlSynchronizer

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Builds the clients from configuration and drives syncs from the CLI.
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config_path: Path to configuration file
            config: Already loaded configuration; skips file loading when given
        """
        self.config_path = config_path
        self.config = config
        self.users_client = None
        self.forum_client = None
        self.synchronizer = None

        self.sync_stats = {
            'emails_processed': 0,
            'emails_failed': 0,
            'contacts_updated': 0,
            'start_time': None,
            'runtime_seconds': 0
        }

    def setup(self):
        """Load configuration, configure logging and build the clients."""
        if self.config is None:
            self.config = load_config(self.config_path)

        setup_logging(self.config.get('logging', {}))

        crm_config = self.config['crm']
        self.users_client = CRMUsersClient(crm_config)
        self.forum_client = ForumClient(self.config['forum'])
        self.synchronizer = ProfileUrlSynchronizer(
            self.users_client,
            self.forum_client,
            profile_url_property_name=crm_config['profile_url_property_name'],
            error_config=self.config.get('error_handling', {})
        )

    def run(self, emails: List[str]) -> int:
        """
        Sync the profile URL for each e-mail address.

        Returns:
            Exit code (0 success, 1 some addresses failed, 2 configuration error, 4 unexpected error)
        """
        self.sync_stats['start_time'] = datetime.now()

        try:
            self.setup()
            logger.info(f"Starting profile URL sync for {len(emails)} addresses")

            for email in emails:
                self._sync_email(email)

            self.sync_stats['runtime_seconds'] = (
                datetime.now() - self.sync_stats['start_time']
            ).total_seconds()
            self._log_sync_summary()

            if self.sync_stats['emails_failed'] > 0:
                logger.warning(f"Sync completed with {self.sync_stats['emails_failed']} failures")
                return 1

            logger.info("Sync completed successfully")
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 2
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 4

    def _sync_email(self, email: str):
        try:
            updated = self.synchronizer.create_or_update_with_profile_url(email)
            self.sync_stats['emails_processed'] += 1
            self.sync_stats['contacts_updated'] += len(updated)
        except (CRMAPIError, ValueError) as e:
            self.sync_stats['emails_failed'] += 1
            logger.error(f"Failed to sync profile URL for {email}: {e}")

    def _log_sync_summary(self):
        stats = self.sync_stats
        logger.info("=== Sync Summary ===")
        logger.info(f"Total runtime: {stats['runtime_seconds']:.2f} seconds")
        logger.info(f"Addresses processed: {stats['emails_processed']}")
        logger.info(f"Addresses failed: {stats['emails_failed']}")
        logger.info(f"Contacts updated: {stats['contacts_updated']}")

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration and CRM reachability.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self.setup()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except Exception as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        first_page = self.users_client.fetch_page(1)
        if isinstance(first_page, PageFailure):
            health_status['checks']['crm'] = {
                'status': 'fail',
                'message': f'CRM listing failed: {first_page.error}'
            }
            health_status['status'] = 'unhealthy'
        else:
            health_status['checks']['crm'] = {
                'status': 'pass',
                'message': f'{first_page.total_count} users in {first_page.total_pages} pages'
            }

        return health_status


def _print_users(users):
    print(json.dumps([user.to_dict() for user in users], indent=2))


def main():
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(description='Sync forum profile URLs into CRM contacts')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--email', '-e', action='append', default=[],
                        help='E-mail address to sync (repeatable)')
    parser.add_argument('--view', metavar='EMAIL',
                        help='Print the CRM contacts matching an e-mail address')
    parser.add_argument('--list-users', action='store_true',
                        help='Print every user in the CRM directory')
    parser.add_argument('--avatar', metavar='EMAIL',
                        help='Print the Gravatar thumbnail URL for an e-mail address')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of sync')

    args = parser.parse_args()

    orchestrator = SyncOrchestrator(config_path=args.config)

    if args.health_check:
        health_status = orchestrator.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    if args.avatar:
        try:
            timeout = load_config(args.config)['avatar']['timeout_seconds']
        except ConfigurationError as e:
            logger.debug(f"Using default avatar timeout: {e}")
            timeout = 5
        print(GravatarProvider().get_avatar_url(args.avatar, timeout_seconds=timeout) or '')
        sys.exit(0)

    if args.view or args.list_users:
        try:
            orchestrator.setup()
            if args.view:
                _print_users(orchestrator.users_client.view(ViewCriteria(email=args.view)))
            else:
                _print_users(orchestrator.users_client.get_all_users())
        except ConfigurationError as e:
            print(f"Configuration error: {e}")
            sys.exit(2)
        except CRMAPIError as e:
            print(f"CRM error: {e}")
            sys.exit(1)
        sys.exit(0)

    if not args.email:
        parser.error('at least one --email is required')

    sys.exit(orchestrator.run(args.email))


if __name__ == "__main__":
    main()
