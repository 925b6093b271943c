#app/policies/user_policies.py
from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, Sequence

from app.core.errors import ImmutableFieldError, InvariantError
from app.models.enums import UserRole
from app.models.user import User

REFERRAL_CODE_RE = re.compile(r"^WT-[A-Z]{4}[0-9][A-Z]$")

# Maintained by the referral service / registration only
REFERRAL_IDENTITY_FIELDS = frozenset({"referral_code", "referred_by"})
REFERRAL_STAT_FIELDS = frozenset({"total_referrals", "total_earnings"})
SYSTEM_FIELDS = frozenset({"id", "email", "password_hash", "created_at"})

UserGuard = Callable[[User, Dict[str, Any]], None]


def reject_admin_elevation(user: User, changes: Dict[str, Any]) -> None:
    role = changes.get("role")
    if role is None:
        return
    role = UserRole(role).value
    if role == UserRole.ADMIN.value and user.role != UserRole.ADMIN.value:
        raise InvariantError("ADMIN role can only be granted out-of-band.")
    if user.role == UserRole.ADMIN.value and role != UserRole.ADMIN.value:
        raise InvariantError("ADMIN role can only be revoked out-of-band.")


def reject_referral_identity_change(user: User, changes: Dict[str, Any]) -> None:
    for field in sorted(REFERRAL_IDENTITY_FIELDS.intersection(changes)):
        current = getattr(user, field)
        if current is not None and changes[field] != current:
            raise ImmutableFieldError(f"{field} cannot change once set.", meta={"fields": [field]})


def reject_stat_writes(user: User, changes: Dict[str, Any]) -> None:
    touched = sorted((REFERRAL_STAT_FIELDS | SYSTEM_FIELDS).intersection(changes))
    if touched:
        raise ImmutableFieldError("Fields are not writable through user updates.", meta={"fields": touched})


USER_UPDATE_GUARDS: Sequence[UserGuard] = (
    reject_admin_elevation,
    reject_referral_identity_change,
    reject_stat_writes,
)


def run_user_guards(
    user: User,
    changes: Dict[str, Any],
    guards: Iterable[UserGuard] = USER_UPDATE_GUARDS,
) -> None:
    for guard in guards:
        guard(user, changes)


def referral_code_prefix(name: str) -> str:
    """First four letters of the name, uppercased, padded with X."""
    letters = "".join(ch for ch in (name or "") if ch.isascii() and ch.isalpha()).upper()
    return (letters[:4]).ljust(4, "X")
