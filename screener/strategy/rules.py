"""Rule cascade — ordered (predicate, verdict) lists evaluated first-match-wins.

Each evaluator declares its rules as a module-level tuple of ``Rule``
objects.  Order in the tuple *is* the precedence; nothing else decides it.
"""

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from screener.strategy.models import Verdict


Reasons = Callable[[Any], list[str]]


def _no_reasons(_facts: Any) -> list[str]:
    return []


@dataclass(frozen=True)
class Rule:
    """One step of a cascade.

    Attributes:
        name: Stable identifier, used in logs and tests.
        when: Predicate over the evaluator's facts object.
        label: Verdict label emitted when the rule matches.
        sentiment: ``"positive"``, ``"neutral"`` or ``"negative"``.
        reasons: Builds the ordered reason list from the facts.
    """

    name: str
    when: Callable[[Any], bool]
    label: str
    sentiment: str
    reasons: Reasons = _no_reasons

    def verdict(self, facts: Any) -> Verdict:
        return Verdict(self.label, self.sentiment, tuple(self.reasons(facts)))


def run_cascade(rules: Sequence[Rule], facts: Any, default: Rule) -> Verdict:
    """Return the verdict of the first matching rule, else *default*'s."""
    return match_rule(rules, facts, default).verdict(facts)


def match_rule(rules: Sequence[Rule], facts: Any, default: Rule) -> Rule:
    """Return the first rule whose predicate holds for *facts*."""
    for rule in rules:
        if rule.when(facts):
            return rule
    return default
