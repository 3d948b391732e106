"""Main entry point: one sync session between the sync folder and the device."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from mcu_sync.config_loader import (
    DEFAULT_CONFIG_FILE,
    Config,
    ConfigError,
    load_config,
    load_config_from_env,
)
from mcu_sync.conflict import ConflictResolver, Prompt, SyncAborted
from mcu_sync.device_client import DeviceClient, DeviceError
from mcu_sync.dry_run_formatter import DryRunFormatter
from mcu_sync.file_ops import FileOps, FileOpsError
from mcu_sync.logging_setup import get_logger, setup_logging
from mcu_sync.planner import Direction, OperationType, plan_operations
from mcu_sync.prompts import confirm_or_default, prompt_choice
from mcu_sync.scanner import Scanner, ScanError
from mcu_sync.snapshot import DirNode, NodeKind, to_structure
from mcu_sync.state_db import StateDB, StateDBError
from mcu_sync.sync_logic import (
    TRANSFER_ACTIONS,
    SyncAction,
    SyncEngine,
    apply_base_updates,
    apply_transpile_aliases,
)
from mcu_sync.transfer import OperationStatus, TransferExecutor, TransferReport, TransferResult
from mcu_sync.transpile import Transpiler

logger = get_logger()

FIRST_SYNC_CHOICES = [
    ("abort", "Abort synchronization"),
    (
        "initial_sync",
        "Discard sync history and do an initial sync. You will be asked how to proceed "
        "where files exist both locally and on the device and differ. No existing files "
        "or folders will be overwritten automatically.",
    ),
]

RESTART_MESSAGE = (
    "The filesystem of the microcontroller has changed. Restart the currently running "
    "program for any changes to take effect? (Use --restart/--no-restart to decide "
    "automatically.)"
)
MONITOR_MESSAGE = (
    "Would you like to show the output of the microcontroller? "
    "(Use --monitor/--no-monitor to decide automatically.)"
)


class SyncRunner:
    """Orchestrates one sync session as sequential phases."""

    def __init__(
        self,
        config: Config,
        device: Optional[DeviceClient] = None,
        conflict_prompt: Optional[Prompt] = None,
    ):
        """Initialize sync runner.

        Args:
            config: Loaded configuration
            device: Device client (built from config when omitted)
            conflict_prompt: Conflict decision callable (terminal when omitted)
        """
        self.config = config
        self.device = device or DeviceClient(
            config.device_url,
            username=config.device_username,
            password=config.device_password,
            timeout=config.device_timeout,
        )
        self.scanner = Scanner(exclude_globs=config.exclude)
        self.state_db = StateDB(config.base_file)
        self.file_ops = FileOps(config.sync_dir)
        self.transpiler = Transpiler(
            command=config.transpile_command,
            extensions=config.transpile_extensions,
            enabled=config.transpile_enabled,
        )
        self.resolver = ConflictResolver(config.conflict_policy, prompt=conflict_prompt)
        self.report = TransferReport()

    def run(self) -> bool:
        """Execute the sync session.

        Returns:
            True if the session completed without failed transfers
        """
        try:
            logger.info("Starting sync session")
            return self._run_session()
        except SyncAborted as e:
            logger.info(f"Sync aborted: {e}")
            print("Synchronization aborted. Nothing was changed.")
            return True
        except (ScanError, DeviceError) as e:
            logger.error(f"Could not list files: {e}")
            print(f"Error: could not list files: {e}")
            return False
        except StateDBError as e:
            logger.error(f"Could not persist sync state: {e}")
            print(
                f"Error: could not persist sync state ({e}). "
                "The next run may report spurious conflicts."
            )
            return False
        except FileOpsError as e:
            logger.error(f"Sync folder error: {e}")
            print(f"Error: {e}")
            return False

    def _prepare_sync_folder(self) -> None:
        """Create the sync folder if needed.

        Raises:
            FileOpsError: If a file occupies the sync folder's location
        """
        sync_dir = Path(self.config.sync_dir)
        if not sync_dir.exists():
            self.file_ops.make_dir("")
            print(f"Created directory '{sync_dir}' because it does not exist yet.")
        elif not sync_dir.is_dir():
            raise FileOpsError(
                f"Cannot synchronize with directory '{sync_dir}' because a file exists "
                "in the same location."
            )

    def _confirm_first_sync(self, has_local_files: bool) -> bool:
        """Ask how to proceed when the device was never synced.

        Only asked when there is both sync history and local content;
        otherwise the history is silently discarded.

        Returns:
            False if the user chose to abort
        """
        if not (has_local_files and self.state_db.exists()):
            return True
        try:
            answer = prompt_choice(
                "The filesystem of the microcontroller has not been synced before. "
                "What would you like to do?",
                FIRST_SYNC_CHOICES,
                default="abort",
            )
        except (KeyboardInterrupt, EOFError) as e:
            raise SyncAborted("Synchronization aborted by user") from e
        return answer == "initial_sync"

    def _run_session(self) -> bool:
        self._prepare_sync_folder()

        print("Fetching file system listings...")
        local_stats = self.scanner.scan_directory(self.config.sync_dir)
        local = to_structure(local_stats)
        remote_stats, had_put = self.device.list_files(self.config.exclude)
        remote = to_structure(remote_stats)

        if had_put:
            base, transpiled = self.state_db.load_snapshot()
            apply_transpile_aliases(remote, transpiled)
        else:
            if not self._confirm_first_sync(bool(local_stats)):
                raise SyncAborted("User chose not to sync an unsynced device")
            logger.info("Device was never synced; starting from an empty base")
            base, transpiled = DirNode(), {}

        jobs = SyncEngine(local, remote, base).generate_actions()
        resolved = self.resolver.resolve([j for j in jobs if not j.is_final])
        final_jobs = [j for j in jobs if j.is_final] + resolved
        skipped = sum(1 for j in resolved if j.action == SyncAction.NOOP)

        if self.config.dry_run:
            plan = plan_operations(final_jobs, local, remote)
            print("\n" + DryRunFormatter().format_dry_run_output(plan, skipped) + "\n")
            return True

        if not had_put:
            if self.state_db.exists():
                self.state_db.discard()
            self.device.set_had_put()

        apply_base_updates(final_jobs, local, base)
        self.state_db.save_snapshot(base, transpiled)

        if not any(j.action in TRANSFER_ACTIONS for j in final_jobs):
            print("Nothing to synchronize.")
            self.report = TransferReport()
        else:
            plan = plan_operations(final_jobs, local, remote)
            executor = TransferExecutor(
                self.file_ops,
                self.device,
                base,
                transpiled,
                transpiler=self.transpiler,
                on_progress=self._print_progress,
            )
            try:
                self.report = executor.execute(plan)
            finally:
                self.state_db.save_snapshot(base, transpiled)

        self._print_summary(skipped)
        self._after_sync(self.report.changed_remote_paths)
        return self.report.succeeded

    def _print_progress(self, result: TransferResult) -> None:
        op = result.operation
        direction = "PC => MC" if op.direction == Direction.TO_REMOTE else "MC => PC"
        what = "Folder" if op.kind == NodeKind.DIR else "File"
        if result.status == OperationStatus.FAILED:
            print(f"{direction}: FAILED {what} {op.relative_path}: {result.error}")
        elif op.operation == OperationType.ADD:
            print(f"{direction}: +{what} {op.relative_path}")
        elif op.operation == OperationType.UPDATE:
            print(f"{direction}: ~{what} {op.relative_path}")
        else:
            print(f"{direction}: -File/Folder {op.relative_path}")

    def _print_summary(self, skipped_conflicts: int) -> None:
        failed = self.report.failed_paths
        logger.info(
            f"Sync completed: {len(self.report.verified)} operations verified, "
            f"{len(failed)} failed, {skipped_conflicts} conflicts skipped"
        )
        print(f"\n{'='*50}")
        print("Sync Summary")
        print(f"{'='*50}")
        print(f"Operations verified: {len(self.report.verified)}")
        print(f"Operations failed: {len(failed)}")
        print(f"Conflicts skipped: {skipped_conflicts}")
        if failed:
            print("Not synchronized (will be retried next run):")
            for path in failed:
                print(f"  {path}")
        print(f"{'='*50}\n")

    def _after_sync(self, changed_remote_paths: List[str]) -> None:
        """Offer a program restart and the output monitor."""
        try:
            if changed_remote_paths:
                logger.info(f"Device changed at {len(changed_remote_paths)} paths")
                if self.device.program_status() != "stopped" and confirm_or_default(
                    self.config.restart, RESTART_MESSAGE, True
                ):
                    print("Restarting program...")
                    self.device.restart_program()

            if confirm_or_default(self.config.monitor, MONITOR_MESSAGE, True):
                print("Starting monitor...")
                self.device.monitor()
        except DeviceError as e:
            logger.warning(f"Post-sync device request failed: {e}")
            print(f"Warning: {e}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure, 130 when interrupted)
    """
    parser = argparse.ArgumentParser(
        description="Synchronize a local folder with a microcontroller's filesystem"
    )
    parser.add_argument("--config", type=str, help="Path to the YAML config file")
    parser.add_argument(
        "--use-env",
        action="store_true",
        help="Load config from the MCU_SYNC_CONFIG environment variable",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Show planned changes without applying them"
    )
    parser.add_argument(
        "--restart",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Restart the device program after the device filesystem changed",
    )
    parser.add_argument(
        "--monitor",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show the device program output after syncing",
    )
    parser.add_argument(
        "--no-transpile", action="store_true", help="Upload files without transpiling them"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show log messages on the console"
    )

    args = parser.parse_args(argv)

    try:
        if args.use_env:
            config = load_config_from_env()
        elif args.config:
            config = load_config(args.config)
        elif Path(DEFAULT_CONFIG_FILE).exists():
            config = load_config(DEFAULT_CONFIG_FILE)
        else:
            parser.print_help()
            print(
                f"\nNo config file specified. Use --config or --use-env, "
                f"or place {DEFAULT_CONFIG_FILE} in the current directory"
            )
            return 1
    except (ConfigError, yaml.YAMLError) as e:
        print(f"Config error: {e}")
        return 1

    if args.dry_run:
        config.set_override("dry_run", True)
    if args.restart is not None:
        config.set_override("restart", args.restart)
    if args.monitor is not None:
        config.set_override("monitor", args.monitor)
    if args.no_transpile:
        config.set_override("transpile.enabled", False)

    try:
        setup_logging(
            config.log_file_path,
            config.log_level,
            max_bytes=config.log_max_size_mb * 1024 * 1024,
            backup_count=config.log_backup_count,
            rotation_enabled=config.log_rotation_enabled,
            verbose=args.verbose,
        )
    except (ValueError, OSError) as e:
        print(f"Logging setup error: {e}")
        return 1

    runner = None
    try:
        runner = SyncRunner(config)
        success = runner.run()
        return 0 if success else 1
    except KeyboardInterrupt:
        logger.info("Sync interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        if runner is not None:
            runner.device.close()


if __name__ == "__main__":
    sys.exit(main())
