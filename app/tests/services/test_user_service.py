import random

import pytest

from app.core.errors import ImmutableFieldError, InvariantError
from app.models.enums import UserRole
from app.policies.user_policies import REFERRAL_CODE_RE, referral_code_prefix
from app.services.referral_service import ReferralService
from app.services.user_service import UserService


def test_referral_code_prefix_pads_short_names():
    assert referral_code_prefix("Asha Rao") == "ASHA"
    assert referral_code_prefix("Li") == "LIXX"
    assert referral_code_prefix("") == "XXXX"


def test_register_assigns_code_and_links_referrer(db):
    svc = UserService(rng=random.Random(7))
    referrer = svc.register(db, name="Ravi Kumar", email="Ravi@Example.com", password="password-1")

    assert referrer.email == "ravi@example.com"
    assert REFERRAL_CODE_RE.match(referrer.referral_code)
    assert referrer.referral_code.startswith("WT-RAVI")

    buyer = svc.register(
        db,
        name="Asha",
        email="asha@example.com",
        password="password-2",
        referral_code=referrer.referral_code.lower(),
    )

    assert buyer.referred_by == referrer.id
    db.refresh(referrer)
    assert referrer.total_referrals == 1


def test_register_rejects_duplicates_and_unknown_codes(db):
    svc = UserService()
    svc.register(db, name="Ravi", email="ravi@example.com", password="password-1")

    with pytest.raises(ValueError):
        svc.register(db, name="Ravi 2", email="RAVI@example.com", password="password-1")
    with pytest.raises(ValueError):
        svc.register(db, name="Asha", email="asha@example.com", password="password-2", referral_code="WT-NOPE1Z")


def test_admin_cannot_be_granted_through_updates(db, make_user):
    user = make_user()

    with pytest.raises(InvariantError):
        UserService().update_user(db, user_id=user.id, changes={"role": UserRole.ADMIN.value})


def test_referral_identity_and_stats_are_not_writable(db, make_user):
    referrer = make_user(name="Ravi")
    user = make_user(referred_by=referrer.id)
    svc = UserService()

    with pytest.raises(ImmutableFieldError):
        svc.update_user(db, user_id=user.id, changes={"referred_by": None})
    with pytest.raises(ImmutableFieldError):
        svc.update_user(db, user_id=user.id, changes={"total_earnings": "999.000000"})

    updated = svc.update_user(db, user_id=user.id, changes={"name": "New Name"})
    assert updated.name == "New Name"


def test_grant_admin_out_of_band(db, make_user):
    user = make_user()
    granted = UserService().grant_admin(db, email=user.email)
    assert granted.role == UserRole.ADMIN.value


def test_promote_to_agent_only_from_user(db, make_user):
    svc = UserService()
    user = make_user()
    admin = make_user(role=UserRole.ADMIN.value)

    assert svc.promote_to_agent(db, user_id=user.id) is True
    assert svc.promote_to_agent(db, user_id=user.id) is False
    assert svc.promote_to_agent(db, user_id=admin.id) is False
    db.commit()

    db.refresh(user)
    assert user.role == UserRole.AGENT.value
    assert user.agent_commission_rate == "0.25"


def test_recompute_stats_rebuilds_cache(db, make_user):
    referrer = make_user(name="Ravi")
    make_user(referred_by=referrer.id)
    make_user(referred_by=referrer.id)
    referrer.total_referrals = 0
    referrer.total_earnings = "5.000000"
    db.commit()

    user = ReferralService().recompute_stats(db, user_id=referrer.id)

    assert user.total_referrals == 2
    assert user.total_earnings == "0.000000"


def test_commission_is_quantized():
    assert ReferralService().commission_for("100.000000", "0.25") == "25.000000"
    assert ReferralService().commission_for("8.000000", "0.333") == "2.664000"
