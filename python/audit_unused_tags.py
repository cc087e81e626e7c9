#!/usr/bin/env python3
"""
Registry Tag Audit Tool

Lists the tags of a GitLab container registry repository, keeps the ones older
than --minexpiry days that do not match --regexp, checks every pod of every
cluster given with --kubeconfig and reports the tags no container runs.
With --delete the unused tags are removed after an interactive confirmation.
"""

import argparse
import sys
from typing import List, Optional

from registry_audit.audit import run_audit
from registry_audit.config_manager import ConfigManager
from registry_audit.error_utils import ActionableError
from registry_audit.logging_utils import get_logger, log_exception, set_level, setup_logging

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Find (and optionally delete) registry tags not running in any Kubernetes cluster",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Report unused tags older than 7 days
  python audit_unused_tags.py --giturl https://gitlab.example.com \\
      --registryurl https://registry.example.com --user bot --repository group/app \\
      --kubeconfig ~/.kube/prod --kubeconfig ~/.kube/staging

  # Keep release tags, only consider tags older than 30 days, delete the rest
  python audit_unused_tags.py ... --minexpiry 30 --regexp '^v[0-9]+\\.' --delete

Configuration:
  Values not given on the command line come from environment variables
  (GIT_URL, REGISTRY_URL, REPOSITORY, REGISTRY_USERNAME, REGISTRY_PASSWORD,
  KUBECONFIGS, MIN_EXPIRY_DAYS, EXCLUDE_PATTERN) or config.yaml.
        """
    )

    parser.add_argument('--giturl', help='URL to the GitLab instance issuing registry tokens')
    parser.add_argument('--registryurl', help='URL to the GitLab docker registry')
    parser.add_argument('--user', help='Username used to access the repository')
    parser.add_argument('--password', help='Password used to access the repository (prefer REGISTRY_PASSWORD)')
    parser.add_argument(
        '--repository',
        help='Lookup this specific repository. Include the group if the repository is in a group.'
    )
    parser.add_argument(
        '--kubeconfig',
        action='append',
        dest='kubeconfigs',
        metavar='PATH',
        help='Path to a kubeconfig file, repeat once per cluster'
    )
    parser.add_argument(
        '--minexpiry',
        type=int,
        help='Minimum age in days of images that may be removed (default: 7)'
    )
    parser.add_argument('--regexp', help='Regex pattern which must NOT match the image tag')
    parser.add_argument('--delete', action='store_true', help='Delete all unused images after confirmation')
    parser.add_argument('--config', help='Path to config.yaml (default: CONFIG_FILE or ./config.yaml)')
    parser.add_argument('--report', help='Write a JSON audit report to this path')
    parser.add_argument(
        '--skip-unreachable-clusters',
        action='store_true',
        help='Continue when a cluster cannot be scanned (deletion is then refused)'
    )
    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: LOG_LEVEL or INFO)'
    )

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> dict:
    """Map parsed arguments onto AuditConfig field names"""
    return {
        'git_url': args.giturl,
        'registry_url': args.registryurl,
        'username': args.user,
        'password': args.password,
        'repository': args.repository,
        'kubeconfigs': args.kubeconfigs,
        'min_expiry_days': args.minexpiry,
        'exclude_pattern': args.regexp,
        'delete_images': args.delete,
        'report_path': args.report,
        'fail_fast_clusters': False if args.skip_unreachable_clusters else None,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    args = parse_arguments(argv)
    setup_logging()
    if args.log_level:
        set_level(args.log_level)

    try:
        config = ConfigManager(args.config).build_audit_config(build_overrides(args))

        logger.info(f"Using registry URL: {config.registry_url}")
        logger.info(f"Using repository: {config.repository}")
        logger.info(f"Using clusters: {list(config.kubeconfigs)}")
        logger.info(f"Using minimum expiry: {config.min_expiry_days} days")
        if config.exclude_pattern:
            logger.info(f"Using exclusion pattern: {config.exclude_pattern}")

        result = run_audit(config)

    except KeyboardInterrupt:
        logger.warning("⚠️  Audit interrupted by user")
        return 1
    except ActionableError as e:
        print(e.format_message())
        return 1
    except Exception as e:
        log_exception(logger, "Audit failed", e)
        return 1

    if result.report_file:
        logger.info(f"Report saved to: {result.report_file}")
    if not result.ok:
        if result.deletion_refused:
            logger.error("❌ Deletion was requested but refused because some clusters were not scanned")
        else:
            logger.error("❌ Some images could not be deleted")
        return 1

    logger.info("✅ Audit completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
