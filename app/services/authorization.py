"""Admin gate: a single configured administrator, matched by email."""


def is_admin(resolved_email: str, admin_email: str) -> bool:
    """True only when both emails are non-empty and equal after normalization."""
    caller = (resolved_email or "").strip().lower()
    admin = (admin_email or "").strip().lower()
    if not caller or not admin:
        return False
    return caller == admin
