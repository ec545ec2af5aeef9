#!/usr/bin/env python3
"""
Brute Force Login Protection - .htaccess administration

Command-line admin surface for the Brute Force Login Protection block of a
.htaccess file: configure the plugin options, block and unblock IPs by hand,
list the blocked IPs and enable or disable the whole block.

Usage:
    Check that the .htaccess file can be managed:
        $ python3 block_admin.py --htaccess-dir /var/www/html check

    Block and unblock an IP:
        $ python3 block_admin.py block 203.0.113.7
        $ python3 block_admin.py unblock 203.0.113.7

    List blocked IPs with geolocation:
        $ export IPINFO_TOKEN="your-ipinfo-token"
        $ python3 block_admin.py list

    Save options (validated, written to bflp_options.json):
        $ python3 block_admin.py configure --allowed-attempts 5 --reset-time 30
        $ python3 block_admin.py configure --htaccess-dir /var/www/html

    Disable / re-enable every managed rule (plugin deactivation / activation):
        $ python3 block_admin.py disable
        $ python3 block_admin.py enable

Configuration:
    See settings.py for the options file and environment variables. Command
    line flags override environment variables, which override the options file.
    `configure` saves the options file merged with its own flags; values that
    only come from the environment are never written to disk.

Exit codes:
    0 on success, 1 when the .htaccess operation failed, 2 on usage errors.
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional

import ipinfo

from htaccess_manager import HtaccessManager
from settings import DEFAULT_OPTIONS_FILE, Settings
from slack_client import create_slack_client

IPINFO_CACHE_TTL = 3600


def setup_logging(debug: bool = False):
    """Configures logging level."""
    log_level = logging.DEBUG if debug else logging.INFO
    # Force reconfiguration even if basicConfig was already called
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        force=True,  # Python 3.8+ - forces reconfiguration
    )


class IpInfoLookup:
    """
    Fetches geolocation and hosting details for blocked IPs.
    Uses in-memory caching to reduce API calls.
    """

    def __init__(self, token: Optional[str]):
        self.handler = ipinfo.getHandler(token) if token else None
        self.cache: Dict[str, tuple] = {}  # {ip: (timestamp, data)}
        self.cache_ttl = IPINFO_CACHE_TTL

    def get(self, ip: str) -> Optional[Dict]:
        """Returns None if ipinfo is not configured or if lookup fails."""
        if not self.handler:
            return None

        now = datetime.now(timezone.utc)
        if ip in self.cache:
            cache_time, cached_data = self.cache[ip]
            age = (now - cache_time).total_seconds()
            if age < self.cache_ttl:
                logging.debug(f"Using cached IP info for {ip} (age: {int(age)}s)")
                return cached_data

        try:
            details = self.handler.getDetails(ip)
            info = {
                "ip": ip,
                "city": getattr(details, "city", "Unknown"),
                "region": getattr(details, "region", "Unknown"),
                "country": getattr(details, "country_name", "Unknown"),
                "org": getattr(details, "org", "Unknown"),  # ISP/Hosting provider
            }
            self.cache[ip] = (now, info)
            return info
        except Exception as e:
            logging.warning(f"Failed to fetch IP info for {ip}: {e}")
            return None


def format_ip_info(ip_info: Optional[Dict]) -> str:
    """Formats IP information into a single readable line."""
    if not ip_info:
        return "IP info not available"

    parts = []
    location_parts = [
        str(ip_info[key])
        for key in ("city", "region", "country")
        if ip_info.get(key) and ip_info[key] != "Unknown"
    ]
    if location_parts:
        parts.append(f"Location: {', '.join(location_parts)}")
    if ip_info.get("org") and ip_info["org"] != "Unknown":
        parts.append(f"Hosting: {str(ip_info['org'])}")

    return " | ".join(parts) if parts else "IP info not available"


def print_blocked_ips(denied_ips: List[str], lookup: Optional[IpInfoLookup] = None):
    """Prints the Blocked IPs table."""
    print("\n--- BLOCKED IPS ---")
    if lookup and lookup.handler:
        print(f"{'#':<5} {'Address':<40} {'Details':<40}")
        print("-" * 85)
    else:
        print(f"{'#':<5} {'Address':<40}")
        print("-" * 45)

    for i, ip in enumerate(denied_ips, start=1):
        if lookup and lookup.handler:
            print(f"{i:<5} {ip:<40} {format_ip_info(lookup.get(ip)):<40}")
        else:
            print(f"{i:<5} {ip:<40}")

    if not denied_ips:
        print("No blocked IPs.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage the Brute Force Login Protection deny rules in a .htaccess file.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog="""
Example (block an IP in the site root's .htaccess):
  python %(prog)s --htaccess-dir /var/www/html block 203.0.113.7
""",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_OPTIONS_FILE,
        help=f"Path to the JSON options file (default: {DEFAULT_OPTIONS_FILE}).",
    )
    parser.add_argument(
        "--htaccess-dir",
        default=None,
        help="Directory containing the .htaccess file (also can use BFLP_HTACCESS_DIR env var).",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable verbose debug logging."
    )

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    subparsers.add_parser("check", help="Check that .htaccess is found, readable and writeable.")

    list_parser = subparsers.add_parser("list", help="List blocked IPs.")
    list_parser.add_argument(
        "--ipinfo-token",
        default=None,
        help="IPInfo API token for IP geolocation (also can use IPINFO_TOKEN env var).",
    )

    block_parser = subparsers.add_parser("block", help="Manually block an IP address.")
    block_parser.add_argument("ip", help="IPv4 or IPv6 address.")

    unblock_parser = subparsers.add_parser("unblock", help="Unblock an IP address.")
    unblock_parser.add_argument("ip", help="IPv4 or IPv6 address.")

    message_parser = subparsers.add_parser(
        "message", help="Set the 403 message shown to blocked visitors (omit to remove it)."
    )
    message_parser.add_argument("text", nargs="?", default="", help="Message text.")

    subparsers.add_parser("disable", help="Comment out all managed lines.")
    subparsers.add_parser("enable", help="Uncomment all managed lines.")

    configure_parser = subparsers.add_parser("configure", help="Validate and save options.")
    configure_parser.add_argument(
        "--allowed-attempts",
        type=int,
        default=None,
        help="Allowed login attempts before blocking IP (default: 20).",
    )
    configure_parser.add_argument(
        "--reset-time",
        type=int,
        default=None,
        help="Minutes before resetting login attempts count (default: 60).",
    )
    configure_parser.add_argument(
        "--htaccess-dir",
        dest="configure_htaccess_dir",
        default=None,
        help="Directory containing the .htaccess file, saved to the options file.",
    )
    configure_parser.add_argument(
        "--403-message",
        dest="message_403",
        default=None,
        help="Message shown to blocked visitors. Applied to .htaccess immediately.",
    )

    subparsers.add_parser("settings", help="Show the effective options.")
    return parser


def load_settings(args) -> Settings:
    """Options file, then environment, then command-line flags."""
    settings = Settings.load(args.config)
    settings.apply_env()
    settings.update(
        htaccess_dir=args.htaccess_dir,
        ipinfo_token=getattr(args, "ipinfo_token", None),
    )
    return settings


def run_command(
    args, settings: Settings, manager: HtaccessManager, persisted: Optional[Settings] = None
) -> int:
    command = args.command

    if command == "check":
        status = manager.check_requirements()
        print(f"File: {manager.path}")
        for key in ("found", "readable", "writeable"):
            print(f"  {key:<10} {'yes' if status[key] else 'NO'}")
        return 0 if all(status.values()) else 1

    if command == "list":
        lookup = IpInfoLookup(settings.ipinfo_token)
        if not lookup.handler:
            logging.debug("No IPInfo token provided. IP geolocation disabled.")
        print_blocked_ips(manager.get_denied_ips(), lookup)
        return 0

    if command == "block":
        if manager.deny_ip(args.ip):
            print(f"Blocked {args.ip}")
            return 0
        print(f"Could not block {args.ip}", file=sys.stderr)
        return 1

    if command == "unblock":
        if manager.undeny_ip(args.ip):
            print(f"Unblocked {args.ip}")
            return 0
        print(f"Could not unblock {args.ip}", file=sys.stderr)
        return 1

    if command == "message":
        return 0 if manager.edit_403_message(args.text) else 1

    if command == "disable":
        return 0 if manager.comment_lines() else 1

    if command == "enable":
        return 0 if manager.uncomment_lines() else 1

    if command == "configure":
        persisted = persisted or settings
        try:
            persisted.save(args.config)
        except OSError as e:
            logging.error(f"Failed to save options to {args.config}: {e}")
            return 1
        if args.message_403 is not None:
            return 0 if manager.edit_403_message(args.message_403) else 1
        return 0

    if command == "settings":
        for name, value in settings.to_options().items():
            print(f"{name:<18} {value}")
        return 0

    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    settings = load_settings(args)
    persisted = None
    if args.command == "configure":
        # The options file only ever receives its previous contents plus flags
        persisted = Settings.load(args.config)
        flags = dict(
            htaccess_dir=args.configure_htaccess_dir or args.htaccess_dir,
            allowed_attempts=args.allowed_attempts,
            reset_time=args.reset_time,
            message_403=args.message_403,
        )
        try:
            persisted.update(**flags)
            persisted.validate()
            settings.update(**flags)
        except ValueError as e:
            parser.error(str(e))
    try:
        settings.validate()
    except ValueError as e:
        parser.error(str(e))

    manager = HtaccessManager(settings=settings, notifier=create_slack_client(settings))
    return run_command(args, settings, manager, persisted)


if __name__ == "__main__":
    sys.exit(main())
