"""Command line interface for the voice-agent configuration store."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from voice_config.cloud import CloudUploadError, DriveAuthorizer
from voice_config.config import ConfigError, StoreSettings, load_settings, resolve_app_path, save_settings
from voice_config.configurator import InteractiveConfigurator, coerce_value
from voice_config.schema import SECRET_FIELDS, Configuration
from voice_config.store import ConfigStore, StoreError
from voice_config.utils import mask_value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Encrypted settings store of the voice agent desktop tool.",
    )
    parser.add_argument("--settings", default="settings.yaml", help="Path to the settings file.")
    parser.add_argument(
        "--app-dir",
        default=None,
        help="Application directory (defaults to the directory of the settings file).",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")

    subparsers = parser.add_subparsers(dest="command")

    parser_show = subparsers.add_parser("show", help="Print the stored configuration.")
    parser_show.add_argument("--reveal", action="store_true", help="Print secret values unmasked.")

    parser_set = subparsers.add_parser("set", help="Set one field, e.g. twilio.accountSid AC123.")
    parser_set.add_argument("field", help="SECTION.FIELD")
    parser_set.add_argument("value", help="New value.")

    parser_configure = subparsers.add_parser("configure", help="Interactively edit one section.")
    parser_configure.add_argument("section", choices=sorted(Configuration.section_names()))

    subparsers.add_parser("sync", help="Back up the env file to the repository and the Drive folder.")
    subparsers.add_parser("pull", help="Pull the development checkout, keeping the local env file.")

    parser_restore = subparsers.add_parser("restore", help="Replace the local env file with a backup copy.")
    parser_restore.add_argument("file", help="Path to the backup env file.")

    subparsers.add_parser("init-settings", help="Write a settings file with default values.")
    subparsers.add_parser("authorize-drive", help="Grant Drive access once and store the token file.")

    return parser


def configure_logging(level: int) -> None:
    if level >= 2:
        log_level = logging.DEBUG
    elif level == 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING
    logging.basicConfig(level=log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def read_settings(args: argparse.Namespace) -> Tuple[StoreSettings, Path]:
    settings_path = Path(args.settings)
    try:
        settings = load_settings(settings_path)
    except ConfigError as exc:
        print(f"Error reading settings: {exc}", file=sys.stderr)
        sys.exit(1)
    app_dir = Path(args.app_dir) if args.app_dir else settings_path.resolve().parent
    return settings, app_dir


def load_store(args: argparse.Namespace) -> ConfigStore:
    settings, app_dir = read_settings(args)
    return ConfigStore.from_settings(settings, app_dir, on_backup=_report_late_backup)


def _report_late_backup(outcome) -> None:
    if outcome.failed:
        logging.getLogger(__name__).warning(outcome.describe())


def masked(config: Configuration) -> Dict[str, Any]:
    data = config.to_dict()
    for section_key, secret_keys in SECRET_FIELDS.items():
        section = data.get(section_key, {})
        for key in secret_keys:
            if key in section:
                section[key] = mask_value(section[key])
    return data


def print_save_result(result) -> None:
    if not result.ok:
        print(f"Save failed: {result.error}", file=sys.stderr)
        sys.exit(1)
    if result.warning:
        print(f"Saved locally, backup failed: {result.warning}")
    else:
        print("Saved.")


def handle_show(store: ConfigStore, reveal: bool) -> None:
    config = store.load()
    data = config.to_dict() if reveal else masked(config)
    print(json.dumps(data, indent=2, ensure_ascii=False))


def handle_set(store: ConfigStore, dotted: str, raw_value: str) -> None:
    section_key, sep, key = dotted.partition(".")
    if not sep or not key:
        print("Field must be given as SECTION.FIELD.", file=sys.stderr)
        sys.exit(1)
    config = store.load()
    try:
        section = config.section(section_key)
    except KeyError:
        print(f"Unknown section '{section_key}'.", file=sys.stderr)
        sys.exit(1)
    try:
        value = coerce_value(section, key, raw_value)
    except ValueError as exc:
        print(f"Invalid value for {dotted}: {exc}", file=sys.stderr)
        sys.exit(1)
    print_save_result(store.save({section_key: {key: value}}))


def handle_configure(store: ConfigStore, section_key: str) -> None:
    configurator = InteractiveConfigurator(store.load())
    try:
        partial = configurator.edit_section(section_key)
    except KeyboardInterrupt:
        print("\nCancelled.")
        return
    if not partial:
        print("No changes.")
        return
    print_save_result(store.save(partial))


def handle_sync(store: ConfigStore) -> None:
    outcomes = store.sync_backup(timeout=store.drain_seconds)
    failed = False
    for outcome in outcomes:
        print(outcome.describe())
        failed = failed or outcome.failed
    if failed:
        sys.exit(1)


def handle_pull(store: ConfigStore) -> None:
    try:
        store.pull_latest()
    except StoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print("Repository updated; local env file kept.")


def handle_restore(store: ConfigStore, file: str) -> None:
    try:
        store.restore_from_file(Path(file))
    except StoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Env file {store.env_path} restored from {file}.")


def handle_init_settings(path: Path) -> None:
    if path.exists():
        print(f"Settings file {path} already exists.", file=sys.stderr)
        sys.exit(1)
    save_settings(StoreSettings(), path)
    print(f"Settings written to {path}.")


def handle_authorize_drive(settings: StoreSettings, app_dir: Path) -> None:
    authorizer = DriveAuthorizer(
        credentials_path=resolve_app_path(app_dir, settings.cloud.credentials_path),
        token_path=resolve_app_path(app_dir, settings.cloud.token_path),
    )
    if authorizer.token_exists():
        print(f"Token file {authorizer.token_path} already exists. Delete it to authorize again.")
        return
    try:
        url = authorizer.authorization_url()
    except CloudUploadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print("Authorize this app by visiting this URL:\n")
    print(url, "\n")
    code = input("Enter the code from that page here: ").strip()
    if not code:
        print("No code entered.", file=sys.stderr)
        sys.exit(1)
    try:
        token_path = authorizer.exchange_code(code)
    except CloudUploadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Token stored to {token_path}.")


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    configure_logging(args.verbose)

    if args.command == "init-settings":
        handle_init_settings(Path(args.settings))
        return
    if args.command == "authorize-drive":
        handle_authorize_drive(*read_settings(args))
        return

    store = load_store(args)
    try:
        if args.command == "show":
            handle_show(store, args.reveal)
        elif args.command == "set":
            handle_set(store, args.field, args.value)
        elif args.command == "configure":
            handle_configure(store, args.section)
        elif args.command == "sync":
            handle_sync(store)
        elif args.command == "pull":
            handle_pull(store)
        elif args.command == "restore":
            handle_restore(store, args.file)
        else:
            parser.print_help()
    finally:
        store.close()


if __name__ == "__main__":
    main()
