import hmac

from .types import AccessDecision

ACCESS_PASSWORD_HEADER = "X-Access-Password"
QUOTA_EXEMPT_HEADER = "X-Quota-Exempt"


def evaluate_access(configured: str | None, supplied: str | None) -> AccessDecision:
    """Decide whether a request may proceed and whether it skips quota.

    Without a configured secret every request is valid and counted. With one,
    a matching credential is exempt, a wrong credential is rejected and an
    absent credential is still allowed but counted by the caller.
    """
    if not configured:
        return AccessDecision(valid=True, exempt=False)
    if not supplied:
        return AccessDecision(valid=True, exempt=False)
    if hmac.compare_digest(supplied.encode("utf-8"), configured.encode("utf-8")):
        return AccessDecision(valid=True, exempt=True)
    return AccessDecision(valid=False, exempt=False)
