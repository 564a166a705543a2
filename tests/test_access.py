import pytest

from relay.access import evaluate_access
from relay.types import AccessDecision


@pytest.mark.parametrize("supplied", [None, "", "anything", "secret"])
def test_open_deployment_is_valid_and_counted(supplied: str | None) -> None:
    assert evaluate_access(None, supplied) == AccessDecision(valid=True, exempt=False)
    assert evaluate_access("", supplied) == AccessDecision(valid=True, exempt=False)


def test_matching_password_is_exempt() -> None:
    assert evaluate_access("secret", "secret") == AccessDecision(valid=True, exempt=True)


@pytest.mark.parametrize("supplied", ["wrong", "Secret", "secret ", "secre"])
def test_mismatched_password_is_rejected(supplied: str) -> None:
    decision = evaluate_access("secret", supplied)
    assert decision.valid is False
    assert decision.exempt is False


@pytest.mark.parametrize("supplied", [None, ""])
def test_anonymous_caller_is_allowed_but_counted(supplied: str | None) -> None:
    assert evaluate_access("secret", supplied) == AccessDecision(valid=True, exempt=False)


def test_non_ascii_password_compares_exactly() -> None:
    assert evaluate_access("pässwörd", "pässwörd").exempt is True
    assert evaluate_access("pässwörd", "passwort").valid is False
