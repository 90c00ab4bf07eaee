"""
Tests for candidate visibility aggregation.
"""
import itertools
import json

import pytest

from app.core.errors import NotFound
from app.core.plans import CONTRACT_SUBDOMAINS, FULLTIME_SUBDOMAINS
from app.db.models import CandidatePayment, User
from app.services.visibility import (
    compute_membership_config,
    parse_membership_config,
    parse_subdomains,
    refresh_user_visibility,
    serialize_membership_config,
)


def payment(package_type, domain=None, subdomains=None, session_id=None, status="completed"):
    return CandidatePayment(
        user_id="u1",
        stripe_session_id=session_id or f"cs_{package_type}_{domain}_{subdomains}",
        package_type=package_type,
        domain=domain,
        subdomains=json.dumps(subdomains or []),
        amount_cents=0,
        status=status,
    )


def test_base_plus_addon_merges_into_one_domain():
    config = compute_membership_config([
        payment("base", "contract", ["c2c"]),
        payment("subdomain_addon", "contract", ["w2"]),
    ])
    assert config == {"contract": ["c2c", "w2"]}


def test_full_bundle_covers_every_subdomain():
    config = compute_membership_config([payment("full_bundle")])
    assert config == {
        "contract": sorted(CONTRACT_SUBDOMAINS),
        "full_time": sorted(FULLTIME_SUBDOMAINS),
    }


def test_full_bundle_absorbs_smaller_purchases():
    config = compute_membership_config([
        payment("base", "contract", ["c2c"]),
        payment("full_bundle"),
    ])
    assert config == compute_membership_config([payment("full_bundle")])


def test_single_domain_bundle_only_touches_its_domain():
    config = compute_membership_config([payment("single_domain_bundle", "full_time")])
    assert config == {"full_time": sorted(FULLTIME_SUBDOMAINS)}


def test_single_domain_bundle_with_unknown_domain_is_skipped():
    config = compute_membership_config([
        payment("single_domain_bundle", "gig"),
        payment("base", "contract", ["1099"]),
    ])
    assert config == {"contract": ["1099"]}


def test_rows_without_domain_or_subdomains_contribute_nothing():
    config = compute_membership_config([
        payment("base", None, ["c2c"]),
        payment("subdomain_addon", "contract", []),
    ])
    assert config == {}


def test_malformed_subdomains_read_as_empty():
    broken = payment("base", "contract")
    broken.subdomains = "{not json"
    config = compute_membership_config([broken, payment("base", "full_time", ["salary"])])
    assert config == {"full_time": ["salary"]}


def test_result_is_independent_of_payment_order():
    payments = [
        payment("base", "contract", ["c2c"]),
        payment("subdomain_addon", "contract", ["w2", "1099"]),
        payment("base", "full_time", ["salary"]),
        payment("subdomain_addon", "full_time", ["c2h"]),
        payment("single_domain_bundle", "contract"),
    ]
    expected = serialize_membership_config(compute_membership_config(payments))
    for ordering in itertools.permutations(payments):
        assert serialize_membership_config(compute_membership_config(ordering)) == expected


def test_duplicate_payments_do_not_change_result():
    once = compute_membership_config([payment("base", "contract", ["c2c"])])
    twice = compute_membership_config([
        payment("base", "contract", ["c2c"]),
        payment("base", "contract", ["c2c", "c2c"]),
    ])
    assert once == twice == {"contract": ["c2c"]}


def test_serialization_is_canonical():
    a = serialize_membership_config({"full_time": ["w2"], "contract": ["c2c"]})
    b = serialize_membership_config({"contract": ["c2c"], "full_time": ["w2"]})
    assert a == b == '{"contract":["c2c"],"full_time":["w2"]}'


@pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]", "42"])
def test_parse_membership_config_tolerates_garbage(raw):
    assert parse_membership_config(raw) is None


def test_parse_subdomains_accepts_list_or_json():
    assert parse_subdomains(["c2c", "", 3]) == ["c2c"]
    assert parse_subdomains('["w2"]') == ["w2"]
    assert parse_subdomains('{"a": 1}') == []
    assert parse_subdomains(None) == []


def _candidate(db, user_id="cand-1"):
    user = User(id=user_id, email=f"{user_id}@example.com", user_type="candidate", username=user_id)
    db.add(user)
    db.commit()
    return user


def test_refresh_user_visibility_uses_completed_payments_only(db):
    user = _candidate(db)
    db.add_all([
        CandidatePayment(user_id=user.id, stripe_session_id="cs_1", package_type="base",
                         domain="contract", subdomains='["c2c"]', status="completed"),
        CandidatePayment(user_id=user.id, stripe_session_id="cs_2", package_type="full_bundle",
                         domain=None, subdomains="[]", status="refunded"),
    ])
    db.commit()

    membership = refresh_user_visibility(db, user.id)
    db.commit()
    db.refresh(user)

    assert membership == {"contract": ["c2c"]}
    assert user.has_purchased_visibility is True
    assert parse_membership_config(user.membership_config) == {"contract": ["c2c"]}


def test_refresh_user_visibility_overwrites_stale_config(db):
    user = _candidate(db)
    user.membership_config = '{"full_time":["salary"]}'
    db.add(CandidatePayment(user_id=user.id, stripe_session_id="cs_1", package_type="base",
                            domain="contract", subdomains='["w2"]'))
    db.commit()

    assert refresh_user_visibility(db, user.id) == {"contract": ["w2"]}


def test_refresh_user_visibility_unknown_user(db):
    with pytest.raises(NotFound):
        refresh_user_visibility(db, "missing")


def test_refresh_user_visibility_locks_user_before_reading_payments(db):
    from sqlalchemy import event
    from sqlalchemy.dialects import postgresql

    user = _candidate(db)
    statements = []

    @event.listens_for(db, "do_orm_execute")
    def capture(state):
        if state.is_select:
            statements.append(str(state.statement.compile(dialect=postgresql.dialect())))

    refresh_user_visibility(db, user.id)
    event.remove(db, "do_orm_execute", capture)

    user_select = next(i for i, sql in enumerate(statements) if "FROM users" in sql)
    payment_select = next(i for i, sql in enumerate(statements) if "FROM candidate_payments" in sql)
    assert "FOR UPDATE" in statements[user_select]
    assert user_select < payment_select


def test_later_recompute_sees_payments_committed_by_another_session(db, session_factory):
    user = _candidate(db)
    other = session_factory()
    try:
        # Both sessions have the user loaded before either purchase lands
        other.query(User).filter(User.id == user.id).one()

        db.add(CandidatePayment(user_id=user.id, stripe_session_id="cs_a", package_type="base",
                                domain="contract", subdomains='["c2c"]'))
        db.flush()
        refresh_user_visibility(db, user.id)
        db.commit()

        other.add(CandidatePayment(user_id=user.id, stripe_session_id="cs_b", package_type="base",
                                   domain="full_time", subdomains='["w2"]'))
        other.flush()
        stored = refresh_user_visibility(other, user.id)
        other.commit()
    finally:
        other.close()

    expected = {"contract": ["c2c"], "full_time": ["w2"]}
    assert stored == expected
    db.expire_all()
    assert parse_membership_config(db.query(User).filter(User.id == user.id).one().membership_config) == expected
