"""
Typed model of the lines kept inside the managed .htaccess block

Lines are parsed once when the block is read and rendered once when it is
written back, so the manager never has to re-scan raw strings for prefixes.

    Denial("1.2.3.4")                      -> deny from 1.2.3.4
    ErrorMessage.for_message("Forbidden")  -> ErrorDocument 403 "Forbidden"
    Commented(Denial("1.2.3.4"))           -> #deny from 1.2.3.4
    Directive("Order deny,allow")          -> Order deny,allow
"""

from dataclasses import dataclass
from typing import Iterable, List, Union

DENY_PREFIX = "deny from "
ERROR_403_PREFIX = "ErrorDocument 403 "
COMMENT_PREFIX = "#"

HEADER_LINES = ['<Files "*">', "Order deny,allow"]
FOOTER_LINES = ["</Files>"]


@dataclass(frozen=True)
class Directive:
    """Any line the manager does not interpret, kept verbatim."""

    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class Denial:
    ip: str

    def render(self) -> str:
        return f"{DENY_PREFIX}{self.ip}"


@dataclass(frozen=True)
class ErrorMessage:
    """
    A 403 ErrorDocument directive.

    `document` is everything after the directive prefix, so unquoted forms
    such as a local URL path survive a read/write cycle unchanged.
    """

    document: str

    @classmethod
    def for_message(cls, message: str) -> "ErrorMessage":
        return cls(f'"{message}"')

    def render(self) -> str:
        return f"{ERROR_403_PREFIX}{self.document}"


@dataclass(frozen=True)
class Commented:
    inner: "Line"

    def render(self) -> str:
        return f"{COMMENT_PREFIX}{self.inner.render()}"


Line = Union[Directive, Denial, ErrorMessage, Commented]

STRUCTURAL_LINES = frozenset(Directive(text) for text in HEADER_LINES + FOOTER_LINES)


def parse_line(text: str) -> Line:
    """Parses one raw line. Prefix matching is literal and case-sensitive."""
    if text.startswith(COMMENT_PREFIX):
        return Commented(parse_line(text[len(COMMENT_PREFIX):]))
    if text.startswith(DENY_PREFIX):
        return Denial(text[len(DENY_PREFIX):])
    if text.startswith(ERROR_403_PREFIX):
        return ErrorMessage(text[len(ERROR_403_PREFIX):])
    return Directive(text)


def parse_lines(texts: Iterable[str]) -> List[Line]:
    return [parse_line(text) for text in texts]


def render_lines(lines: Iterable[Line]) -> List[str]:
    return [line.render() for line in lines]


def is_structural(line: Line) -> bool:
    """True for the fixed header and footer lines that wrap the body."""
    return line in STRUCTURAL_LINES


def wrap_body(body: Iterable[Line]) -> List[Line]:
    """Returns header + body + footer."""
    return (
        [Directive(text) for text in HEADER_LINES]
        + list(body)
        + [Directive(text) for text in FOOTER_LINES]
    )


def unique(lines: Iterable[Line]) -> List[Line]:
    """Drops repeated lines, keeping the first occurrence of each."""
    return list(dict.fromkeys(lines))
