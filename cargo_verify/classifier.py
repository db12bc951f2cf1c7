"""
Line classification: ordered rule tables mapping backend output to a verdict
and to a per-line display importance.

Each backend declares two tables:

- verdict rules: evaluated top-to-bottom against one line at a time. The first
  rule matching a line decides that line; the first line with a deciding rule
  decides the whole job and scanning stops.
- importance rules: a separate, broader table ranking every line for display.

Both tables are plain data so the precedence of each rule can be read (and
tested) without following control flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Union

from cargo_verify import expectation
from cargo_verify.types import Expectation, Importance, Verdict

LOG = logging.getLogger("cargo_verify.classifier")


@dataclass(frozen=True)
class LineContext:
    """What a predicate may look at besides the line itself."""

    expect: Expectation
    name: str


Predicate = Callable[[str, LineContext], bool]
# A rule outcome is a fixed verdict, a function of the context, or None for
# "this line is explicitly not a signal".
Outcome = Union[Verdict, Callable[[LineContext], Verdict], None]


@dataclass(frozen=True)
class Rule:
    name: str
    predicate: Predicate
    outcome: Outcome

    def resolve(self, ctx: LineContext) -> Optional[Verdict]:
        if self.outcome is None or isinstance(self.outcome, Verdict):
            return self.outcome
        return self.outcome(ctx)


@dataclass(frozen=True)
class ImportanceRule:
    name: str
    predicate: Predicate
    rank: int


# -- predicate helpers ---------------------------------------------------------


def starts_with(prefix: str) -> Predicate:
    return lambda line, ctx: line.startswith(prefix)


def ends_with(suffix: str) -> Predicate:
    return lambda line, ctx: line.endswith(suffix)


def contains(text: str) -> Predicate:
    return lambda line, ctx: text in line


def equals(text: str) -> Predicate:
    return lambda line, ctx: line == text


def all_of(*predicates: Predicate) -> Predicate:
    return lambda line, ctx: all(p(line, ctx) for p in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda line, ctx: any(p(line, ctx) for p in predicates)


def is_marker(line: str, ctx: LineContext) -> bool:
    return expectation.is_marker(line)


def expected_panic(line: str, ctx: LineContext) -> bool:
    return expectation.is_expected_panic(line, ctx.expect, ctx.name)


def resolve_completion(ctx: LineContext) -> Verdict:
    """A "run completed, nothing found" signal only counts if no failure was expected."""
    if ctx.expect is None:
        return Verdict.VERIFIED
    return Verdict.ERROR


# -- evaluation ----------------------------------------------------------------


def classify_line(line: str, rules: Sequence[Rule], ctx: LineContext) -> tuple[Optional[Rule], Optional[Verdict]]:
    """Return the first rule matching `line` and its verdict (None if it is not a signal)."""
    for rule in rules:
        if rule.predicate(line, ctx):
            return rule, rule.resolve(ctx)
    return None, None


def classify(lines: Iterable[str], rules: Sequence[Rule], expect: Expectation, name: str) -> Verdict:
    """
    Reduce an ordered sequence of output lines to exactly one verdict.

    Never raises on its input; lines that match nothing yield UNKNOWN and a
    warning naming the job.
    """
    ctx = LineContext(expect=expect, name=name)
    seen: list[str] = []
    for line in lines:
        seen.append(line)
        rule, verdict = classify_line(line, rules, ctx)
        if verdict is not None:
            LOG.debug("%s: line %r matched rule %s -> %s", name, line, rule.name, verdict)
            return verdict

    LOG.warning("Unable to determine status of %s", name)
    for line in seen:
        LOG.warning("     %s: %s", name, line)
    return Verdict.UNKNOWN


def rank_line(
    line: str,
    rules: Sequence[ImportanceRule],
    ctx: LineContext,
    default: int = Importance.APPLICATION,
) -> int:
    for rule in rules:
        if rule.predicate(line, ctx):
            return rule.rank
    return default


def filter_lines(
    lines: Iterable[str],
    rules: Sequence[ImportanceRule],
    ctx: LineContext,
    verbose: int,
    default: int = Importance.APPLICATION,
) -> list[str]:
    """Lines important enough to show at verbosity `verbose` (rank < verbose)."""
    return [line for line in lines if rank_line(line, rules, ctx, default) < verbose]


def echo_lines(
    lines: Iterable[str],
    rules: Sequence[ImportanceRule],
    ctx: LineContext,
    verbose: int,
    default: int = Importance.APPLICATION,
) -> None:
    for line in filter_lines(lines, rules, ctx, verbose, default):
        print(line)
