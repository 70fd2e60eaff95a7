#!/usr/bin/env python3
"""
Command-line interface for Rocky Migrator

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import os
import sys
import json
import argparse
import textwrap
import logging
from typing import List, Optional

from rocky_migrator import __version__
from rocky_migrator.backup import BackupManager
from rocky_migrator.exceptions import MigrationError, RollbackIncompleteError
from rocky_migrator.main import MigrationOrchestrator, configure_logging, summary_lines
from rocky_migrator.package_managers.factory import PackageManagerFactory
from rocky_migrator.plans import PlanRegistry, AlreadyMigrated, describe_plan
from rocky_migrator.rollback import RollbackExecutor
from rocky_migrator.state import StateStore, EXIT_ROLLBACK_INCOMPLETE
from rocky_migrator.utils.config import config, parse_value, DEFAULTS
from rocky_migrator.utils.inspector import SystemInspector, free_disk_space
from rocky_migrator.utils.repositories import store_for

logger = logging.getLogger(__name__)

ROLLBACK_CONFIRMATION = "ROLLBACK"


def setup_argparse() -> argparse.ArgumentParser:
    """Set up command-line argument parser"""
    parser = argparse.ArgumentParser(
        prog="rocky-migrator",
        description="Rocky Migrator - in-place migration of Enterprise Linux, SUSE and Debian hosts to Rocky Linux",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              rocky-migrator inspect          # Show the detected distribution
              rocky-migrator plan             # Show what a migration would do
              rocky-migrator migrate          # Migrate this host to Rocky Linux
              rocky-migrator migrate --yes --include-user-data
              rocky-migrator status           # Show the last recorded run
              rocky-migrator rollback         # Restore the pre-migration backup
              rocky-migrator config get backup_dir
              rocky-migrator config set backup_dir /srv/backup

            Exit codes: 0 succeeded, 1 failed, 2 rolled back, 3 rollback incomplete
        """)
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--root-dir', help='Operate on the system mounted at this directory (default: config root_dir)')
    parser.add_argument('--state-file', help='Run state file (default: config state_file)')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    subparsers.add_parser('inspect', help='Detect the running distribution')
    subparsers.add_parser('plan', help='Show the migration plan for this system')

    migrate_parser = subparsers.add_parser('migrate', help='Migrate this system to Rocky Linux')
    migrate_parser.add_argument('-y', '--yes', action='store_true',
                                help='Do not ask for confirmation')
    migrate_parser.add_argument('--include-user-data', action='store_true', default=None,
                                help='Archive every /home directory into the backup')
    migrate_parser.add_argument('--backup-dir', help='Directory for the pre-migration backup')

    rollback_parser = subparsers.add_parser('rollback', help='Restore the system from the pre-migration backup')
    rollback_parser.add_argument('-y', '--yes', action='store_true',
                                 help='Do not ask for confirmation')

    subparsers.add_parser('status', help='Show the last recorded migration run')

    config_parser = subparsers.add_parser('config', help='Manage Rocky Migrator configuration')
    config_subparsers = config_parser.add_subparsers(dest='config_command', help='Configuration command')
    config_get_parser = config_subparsers.add_parser('get', help='Show a configuration value')
    config_get_parser.add_argument('key', nargs='?', help='Configuration key (all keys when omitted)')
    config_set_parser = config_subparsers.add_parser('set', help='Set a configuration value')
    config_set_parser.add_argument('key', choices=sorted(DEFAULTS), help='Configuration key')
    config_set_parser.add_argument('value', help='New value (comma-separated for lists)')

    return parser


def _root_dir(args: argparse.Namespace) -> str:
    return args.root_dir or config.get("root_dir", "/")


def _state_store(args: argparse.Namespace) -> StateStore:
    return StateStore(args.state_file or config.get("state_file"))


def check_root(args: argparse.Namespace) -> bool:
    """Mutating commands on the live system need root"""
    if _root_dir(args) == "/" and os.geteuid() != 0:
        print("Error: this command must be run as root (use sudo)", file=sys.stderr)
        return False
    return True


def ask_yes_no(prompt: str) -> bool:
    try:
        reply = input(f"{prompt} (y/N): ")
    except EOFError:
        return False
    return reply.strip().lower() in ('y', 'yes')


def print_lines(lines: List[str]) -> None:
    for line in lines:
        print(line)


def handle_inspect(args: argparse.Namespace) -> int:
    root_dir = _root_dir(args)
    try:
        identity = SystemInspector(root_dir).inspect()
    except MigrationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Distribution:   {identity.family.value} {identity.version}")
    print(f"Package system: {identity.package_system.value}")
    print(f"Release string: {identity.raw_release_string}")
    print(f"Free space:     {free_disk_space(root_dir) // (1024 ** 3)} GiB")

    managers = PackageManagerFactory(root_dir).create_for_system()
    print(f"Package tools:  {', '.join(m.name for m in managers) or 'none found'}")
    return 0


def handle_plan(args: argparse.Namespace) -> int:
    try:
        identity = SystemInspector(_root_dir(args)).inspect()
        resolved = PlanRegistry().resolve(identity)
    except MigrationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Detected: {identity}")
    if isinstance(resolved, AlreadyMigrated):
        print("This system already runs Rocky Linux; 'migrate' would reinstall the release and repositories.")
        plan = resolved.plan
    else:
        plan = resolved

    print_lines(describe_plan(plan))

    store = store_for(plan.source_package_manager, _root_dir(args))
    repos = store.scan()
    if repos:
        print(f"Currently configured repositories ({store.repo_dir}):")
        for repo in repos:
            state = "enabled" if repo.enabled else "disabled"
            print(f"  {repo.id:<30} {state}")
    return 0


def handle_migrate(args: argparse.Namespace) -> int:
    if not check_root(args):
        return 1

    root_dir = _root_dir(args)
    if not args.yes:
        print("WARNING: this replaces the distribution of the running system.")
        print("A backup is taken first, but make sure you have an independent recovery plan.")
        if not ask_yes_no("Do you want to proceed with the migration?"):
            print("Migration cancelled")
            return 1

    backup_dir = os.path.expanduser(args.backup_dir) if args.backup_dir else config.get_backup_dir()
    orchestrator = MigrationOrchestrator(
        backup_manager=BackupManager(backup_dir, root_dir),
        state_store=_state_store(args),
        confirm=(lambda prompt: True) if args.yes else ask_yes_no,
        root_dir=root_dir,
        include_user_data=args.include_user_data,
    )
    state = orchestrator.run()

    print()
    print_lines(summary_lines(state))
    return state.exit_code


def handle_rollback(args: argparse.Namespace) -> int:
    if not check_root(args):
        return 1

    store = _state_store(args)
    state = store.load()
    if state is None:
        print(f"No migration run recorded in {store.path}", file=sys.stderr)
        return 1

    print_lines(summary_lines(state))
    if not args.yes:
        print()
        print("The following actions will be performed:")
        print("1. Stop services that might conflict")
        print("2. Restore configuration files from the backup")
        print("3. Restore package repositories")
        print("4. Reinstall the original distribution release packages")
        print()
        print("WARNING: this will overwrite the current system configuration!")
        try:
            reply = input(f"Type '{ROLLBACK_CONFIRMATION}' to confirm: ")
        except EOFError:
            reply = ""
        if reply.strip() != ROLLBACK_CONFIRMATION:
            print("Rollback cancelled - confirmation text did not match")
            return 1

    root_dir = _root_dir(args)
    executor = RollbackExecutor(
        backup_manager=BackupManager(config.get_backup_dir(), root_dir),
        state_store=store,
        root_dir=root_dir,
    )
    try:
        state = executor.rollback(state)
    except RollbackIncompleteError as e:
        print(f"Rollback incomplete: {e}", file=sys.stderr)
        return EXIT_ROLLBACK_INCOMPLETE

    print()
    print_lines(summary_lines(state))
    print()
    print("Post-rollback instructions:")
    print("1. Reboot the system: reboot")
    print("2. Verify the system identity: cat /etc/os-release")
    print("3. Check package repositories and run a full update with the original package manager")
    print("4. Verify that critical services start correctly")
    return state.exit_code


def handle_status(args: argparse.Namespace) -> int:
    store = _state_store(args)
    try:
        state = store.load()
    except (OSError, ValueError) as e:
        print(f"Cannot read {store.path}: {e}", file=sys.stderr)
        return 1

    if state is None:
        print("No migration run has been recorded")
        return 0

    print(f"Started:   {state.started_at.isoformat(timespec='seconds')}")
    if state.completed_at:
        print(f"Completed: {state.completed_at.isoformat(timespec='seconds')}")
    print_lines(summary_lines(state))
    return 0


def handle_config(args: argparse.Namespace) -> int:
    if args.config_command == 'get':
        if args.key:
            value = config.get(args.key)
            if value is None:
                print(f"Unknown configuration key: {args.key}", file=sys.stderr)
                return 1
            print(json.dumps(value) if not isinstance(value, str) else value)
        else:
            print(json.dumps(config.config, indent=2))
        return 0

    if args.config_command == 'set':
        if args.key == "backup_dir":
            ok = config.set_backup_dir(args.value)
        else:
            ok = config.set(args.key, parse_value(args.key, args.value))
        if not ok:
            print(f"Could not save {args.key}", file=sys.stderr)
            return 1
        print(f"{args.key} = {json.dumps(config.get(args.key))}")
        return 0

    print("Usage: rocky-migrator config {get,set} ...", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application"""
    parser = setup_argparse()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose)

    if args.command == 'inspect':
        return handle_inspect(args)
    elif args.command == 'plan':
        return handle_plan(args)
    elif args.command == 'migrate':
        return handle_migrate(args)
    elif args.command == 'rollback':
        return handle_rollback(args)
    elif args.command == 'status':
        return handle_status(args)
    elif args.command == 'config':
        return handle_config(args)
    else:
        # Show help if no command specified
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
