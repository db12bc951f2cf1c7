"""
Expectation extraction.

Instrumented programs announce a `#[should_panic]` contract on their own
output before running the checked function:

    VERIFIER_EXPECT: should_panic
    VERIFIER_EXPECT: should_panic(expected = "overflow")

The expectation is therefore only known after the backend has run, and must
be extracted before classification because several verdict rules depend on
it.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from cargo_verify.types import Expectation

LOG = logging.getLogger("cargo_verify.expectation")

MARKER_PREFIX = "VERIFIER_EXPECT:"
BARE_MARKER = "VERIFIER_EXPECT: should_panic"
_PARAM_PREFIX = 'VERIFIER_EXPECT: should_panic(expected = "'
_PARAM_SUFFIX = '")'

PANICKED = re.compile(r" panicked at '([^']*)',\s+(.*)")


def is_marker(line: str) -> bool:
    return line.startswith(MARKER_PREFIX)


def parse_marker(line: str) -> Expectation:
    """Return the expectation carried by a single marker line, or None."""
    if line == BARE_MARKER:
        return ""
    if line.startswith(_PARAM_PREFIX) and line.endswith(_PARAM_SUFFIX):
        return line[len(_PARAM_PREFIX) : len(line) - len(_PARAM_SUFFIX)]
    return None


def extract_expectation(lines: Iterable[str]) -> Expectation:
    """Scan every line; the last marker wins."""
    expect: Expectation = None
    for line in lines:
        found = parse_marker(line)
        if found is None:
            continue
        if found:
            LOG.info("Expecting '%s'", found)
        expect = found
    return expect


def is_expected_panic(line: str, expect: Expectation, name: str) -> bool:
    """True if `line` is a panic message satisfying `expect`."""
    if expect is None:
        return False
    match = PANICKED.search(line)
    if not match:
        return False
    message, srcloc = match.group(1), match.group(2)
    if expect not in message:
        return False
    LOG.info("     %s: Detected expected failure '%s' at %s", name, message, srcloc)
    LOG.info("     Error message: %s", line)
    return True
