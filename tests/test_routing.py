import pytest

from hivebot.routing import Intent, classify


@pytest.mark.parametrize(
    "text, intent",
    [
        ("help", Intent.HELP),
        ("What is this bot?", Intent.HELP),
        ("please opt me out", Intent.OPT_OUT),
        ("can you opt me out of this", Intent.OPT_OUT),
        ("OPT-OUT", Intent.OPT_OUT),
        ("unsubscribe", Intent.OPT_OUT),
        ("opt in please", Intent.OPT_IN),
        ("please opt me back in", Intent.OPT_IN),
        ("I want to subscribe again", Intent.OPT_IN),
        ("restart", Intent.RESTART),
        ("can I start over?", Intent.RESTART),
        ("new check-in", Intent.RESTART),
        ("yes", Intent.CHECKIN),
        ("hello there", Intent.CHECKIN),
    ],
)
def test_classify(text, intent):
    assert classify(text) == intent


def test_first_match_wins():
    # help outranks opt-out, opt-out outranks opt-in
    assert classify("help me opt out") == Intent.HELP
    assert classify("opt out, not opt in") == Intent.OPT_OUT


def test_words_inside_other_words_do_not_match():
    assert classify("somewhat helpful") == Intent.CHECKIN
    assert classify("restarting my laptop") == Intent.CHECKIN
