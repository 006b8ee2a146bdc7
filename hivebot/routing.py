from __future__ import annotations

import re
from enum import Enum
from typing import Callable


class Intent(str, Enum):
    HELP = "help"
    OPT_OUT = "opt_out"
    OPT_IN = "opt_in"
    RESTART = "restart"
    CHECKIN = "checkin"


def _has_any(*patterns: str) -> Callable[[str], bool]:
    compiled = [re.compile(p) for p in patterns]
    return lambda text: any(p.search(text) for p in compiled)


# Evaluated top to bottom, first match wins. "opt out" must stay ahead of
# "opt in" and both must stay ahead of the restart keywords.
ROUTES: list[tuple[Callable[[str], bool], Intent]] = [
    (_has_any(r"\bhelp\b", r"\bwhat\b"), Intent.HELP),
    (_has_any(r"\bopt[\s-]?out\b", r"\bopt\b.*\bout\b", r"\bunsubscribe\b"), Intent.OPT_OUT),
    (_has_any(r"\bopt[\s-]?in\b", r"\bopt\b.*\bin\b", r"\bsubscribe\b"), Intent.OPT_IN),
    (_has_any(r"\brestart\b", r"\bstart over\b", r"\bnew check[\s-]?in\b"), Intent.RESTART),
]


def classify(text: str) -> Intent:
    normalized = " ".join(text.lower().split())
    for predicate, intent in ROUTES:
        if predicate(normalized):
            return intent
    return Intent.CHECKIN
