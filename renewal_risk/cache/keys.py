"""Cache key shapes for precomputed risk payloads."""

AT_RISK_ACCOUNTS_KEY = "at-risk-accounts"
NEGLECTED_ACCOUNTS_KEY = "neglected-accounts"

GLOBAL_KEYS = (AT_RISK_ACCOUNTS_KEY, NEGLECTED_ACCOUNTS_KEY)


def account_risk_key(account_id) -> str:
    return f"account-risk:{account_id}"
