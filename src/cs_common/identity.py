"""Username derivation shared by every entry point.

Wallet addresses are truncated to a fixed-length username; provider logins
carry an environment prefix that must be stripped before lookup. All three
callers (settlement, provider callbacks, wallet balance) MUST go through
these helpers so the same wallet always maps to the same cache/session keys.
"""

USERNAME_LENGTH = 20


def username_from_wallet(wallet_address: str) -> str:
    return wallet_address[:USERNAME_LENGTH]


def login_prefixes(operator_id: str) -> tuple[str, ...]:
    """Provider login prefixes, most specific first within each family."""
    return (
        "user_",
        f"stg_u{operator_id}_user_",
        "stg_u_",
        f"u{operator_id}_stg_",
        f"stg_u{operator_id}_",
        f"u{operator_id}_",
    )


def extract_username(login: str, operator_id: str = "241") -> str:
    """Strip the first matching provider prefix: 'user_Gz3ZKi9A...' -> 'Gz3ZKi9A...'."""
    if not login:
        return login
    for prefix in login_prefixes(operator_id):
        if login.startswith(prefix):
            return login[len(prefix):]
    return login
