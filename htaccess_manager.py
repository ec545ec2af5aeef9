"""
Htaccess Manager - IP deny rules kept in a managed .htaccess block

The manager owns one marker-delimited region of `<htaccess_dir>/.htaccess`:

    # BEGIN Brute Force Login Protection
    <Files "*">
    Order deny,allow
    ErrorDocument 403 "You have been blocked"
    deny from 1.2.3.4
    deny from 2001:db8::1
    </Files>
    # END Brute Force Login Protection

Every rewrite of the region writes the fixed header, then the body lines, then
the fixed footer, exactly once each. The region is read fresh from disk on
every call; each mutation is a full read-modify-write of the region. There is
no locking: concurrent writers race and the last write wins.

Mutators return a bool. Invalid input and unreadable or unwritable files are
logged and reported as False; removing something that is not there is a
successful no-op.
"""

import ipaddress
import logging
import os
from typing import Dict, List, Optional, Type

from htaccess_lines import (
    Commented,
    Denial,
    ErrorMessage,
    Line,
    is_structural,
    parse_lines,
    render_lines,
    unique,
    wrap_body,
)
from htaccess_markers import (
    MARKER_NAME,
    MarkerFileError,
    extract_from_markers,
    insert_with_markers,
)
from slack_client import SlackBlock

logger = logging.getLogger(__name__)

HTACCESS_FILENAME = ".htaccess"


def is_valid_ip(ip_str: str) -> bool:
    """Checks if a string is a syntactically valid IPv4 or IPv6 address."""
    if not isinstance(ip_str, str) or "%" in ip_str:
        # Scoped IPv6 addresses (fe80::1%eth0) are not valid in a deny directive
        return False
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


class HtaccessManager:
    """
    Reads and rewrites the Brute Force Login Protection block of a .htaccess file.
    """

    def __init__(self, settings=None, notifier=None, marker: str = MARKER_NAME):
        self.path: Optional[str] = None
        self.marker = marker
        self.notifier = notifier
        if settings is not None:
            self.set_path(settings.htaccess_dir)

    def set_path(self, directory: str) -> None:
        """Targets `<directory>/.htaccess`. No I/O is performed."""
        self.path = os.path.join(directory, HTACCESS_FILENAME)

    def check_requirements(self) -> Dict[str, bool]:
        """Checks if the .htaccess file is found, readable and writeable."""
        status = {"found": False, "readable": False, "writeable": False}
        if not self.path:
            return status

        if os.path.exists(self.path):  # File found
            status["found"] = True
        if os.access(self.path, os.R_OK):  # File readable
            status["readable"] = True
        if os.access(self.path, os.W_OK):  # File writeable
            status["writeable"] = True
        return status

    def get_denied_ips(self) -> List[str]:
        """Returns the denied IP addresses, in file order, without repeats."""
        try:
            denials = self._get_lines(Denial)
        except MarkerFileError as e:
            logger.warning(f"Cannot list denied IPs: {e}")
            return []
        return list(dict.fromkeys(line.ip for line in denials))

    def deny_ip(self, ip: str) -> bool:
        """Adds `deny from <ip>` to the block."""
        if not is_valid_ip(ip):
            logger.warning(f"Refusing to deny invalid IP address: {ip!r}")
            return False

        if not self._add_line(Denial(ip)):
            return False
        logger.warning(f"ACTION: Denied access from {ip}")
        self._notify_ip_change(":no_entry:", "Blocked", ip)
        return True

    def undeny_ip(self, ip: str) -> bool:
        """Removes `deny from <ip>` from the block. Absent IPs are a no-op."""
        if not is_valid_ip(ip):
            logger.warning(f"Refusing to undeny invalid IP address: {ip!r}")
            return False

        removed = self._remove_line(line=Denial(ip))
        if removed is None:
            logger.info(f"IP {ip} is not denied. Nothing to remove.")
            return True
        if not removed:
            return False
        logger.warning(f"ACTION: Removed deny rule for {ip}")
        self._notify_ip_change(":white_check_mark:", "Unblocked", ip)
        return True

    def edit_403_message(self, message: Optional[str]) -> bool:
        """
        Sets the message shown to denied visitors. An empty message removes it.

        The 403 line is kept first among the body lines and replaces any
        previous one.
        """
        if not message:
            return self.remove_403_message()
        if message.splitlines() != [message]:
            logger.warning("Refusing 403 message containing a line break")
            return False

        try:
            other_lines = self._get_lines(ErrorMessage, exclude=True)
        except MarkerFileError as e:
            logger.error(f"Cannot edit 403 message: {e}")
            return False

        body = [ErrorMessage.for_message(message)] + other_lines
        return self._write_block(body)

    def remove_403_message(self) -> bool:
        """Removes the 403 message line. A missing line is a no-op."""
        removed = self._remove_line(line_type=ErrorMessage)
        return removed is not False

    def comment_lines(self) -> bool:
        """Comments out every body line, disabling the rules."""
        try:
            current_lines = self._get_lines()
        except MarkerFileError as e:
            logger.error(f"Cannot comment lines: {e}")
            return False

        if not self._write_block([Commented(line) for line in current_lines]):
            return False
        self._notify(f":pause_button: Login protection rules disabled in {self.path}")
        return True

    def uncomment_lines(self) -> bool:
        """
        Restores commented body lines. Body lines that are not commented are
        dropped from the rewritten block.
        """
        try:
            current_lines = self._get_lines(only_body=False)
        except MarkerFileError as e:
            logger.error(f"Cannot uncomment lines: {e}")
            return False

        lines = [
            line.inner
            for line in current_lines
            if isinstance(line, Commented) and not is_structural(line.inner)
        ]
        if not self._write_block(lines):
            return False
        self._notify(f":arrow_forward: Login protection rules enabled in {self.path}")
        return True

    # Private helpers

    def _get_lines(
        self,
        line_type: Optional[Type] = None,
        only_body: bool = True,
        exclude: bool = False,
    ) -> List[Line]:
        """
        Returns parsed lines of the block.

        Args:
            line_type: Keep only lines of this type (or, with `exclude`, only
                lines not of this type). None keeps every line.
            only_body: Drop the header and footer lines wherever they appear.
            exclude: Invert the `line_type` filter.

        Raises:
            MarkerFileError: If the file exists but cannot be read.
        """
        if not self.path:
            raise MarkerFileError("No .htaccess path configured")

        lines = parse_lines(extract_from_markers(self.path, self.marker))
        if only_body:
            lines = [line for line in lines if not is_structural(line)]
        if line_type is None:
            return lines
        return [line for line in lines if isinstance(line, line_type) != exclude]

    def _add_line(self, line: Line) -> bool:
        try:
            body = self._get_lines()
        except MarkerFileError as e:
            logger.error(f"Cannot add line: {e}")
            return False
        return self._write_block(unique(body + [line]))

    def _remove_line(
        self, line: Optional[Line] = None, line_type: Optional[Type] = None
    ) -> Optional[bool]:
        """
        Removes the first body line equal to `line`, or the first of `line_type`.

        Returns:
            None if no line matched (nothing written), otherwise the write result.
        """
        try:
            body = self._get_lines()
        except MarkerFileError as e:
            logger.error(f"Cannot remove line: {e}")
            return False

        for index, current in enumerate(body):
            if (line_type is not None and isinstance(current, line_type)) or (
                line_type is None and current == line
            ):
                del body[index]
                return self._write_block(body)
        return None

    def _write_block(self, body: List[Line]) -> bool:
        success = insert_with_markers(
            self.path, self.marker, render_lines(wrap_body(body))
        )
        if not success:
            logger.error(f"Failed to update {self.path}")
        return success

    def _notify_ip_change(self, emoji: str, action: str, ip: str) -> None:
        if not self.notifier:
            return
        text = f"{emoji} {action} IP {ip} in {self.path}"
        block = SlackBlock()
        block.append(message=f"{emoji} *{action} IP* `{ip}`")
        block.add_divider()
        block.add_context(message=f"File: {self.path}")
        try:
            if self.notifier.post_blocks(blocks=block.get()["blocks"], text=text):
                logger.debug(f"Slack notification sent: {text}")
            else:
                logger.debug("Failed to send Slack notification")
        except Exception as e:
            logger.warning(f"Error sending Slack notification: {e}")

    def _notify(self, message: str) -> None:
        if not self.notifier:
            return
        try:
            if self.notifier.post_message(message=message):
                logger.debug(f"Slack notification sent: {message}")
            else:
                logger.debug("Failed to send Slack notification")
        except Exception as e:
            logger.warning(f"Error sending Slack notification: {e}")
