from __future__ import annotations

import pytest

from bithedge import policy_queries, store
from bithedge.errors import NotAuthenticatedError
from bithedge.models import (
    Identity,
    Policy,
    PolicyEventType,
    PolicyStatus,
    PolicyType,
    PositionType,
    TokenType,
)

BUYER = "ST2CY5V39NHDPWSXMW9QDT3HC3GD6Q6XX4CFRK9AG"
PROVIDER = "ST2JHG361ZXG51QTKY2NQCVBPPRRE2KZB1HR05NNC"


def make_policy(policy_id: str, **overrides) -> Policy:
    fields = dict(
        id=policy_id,
        owner=BUYER,
        counterparty=PROVIDER,
        policy_type=PolicyType.PUT,
        position_type=PositionType.LONG_PUT,
        protected_value=45_000.0,
        protection_amount=0.5,
        premium=100.0,
        collateral_token=TokenType.STX,
        settlement_token=TokenType.STX,
        status=PolicyStatus.ACTIVE,
        creation_timestamp=1_000,
        updated_at=1_000,
        expiration_height=5_000,
    )
    fields.update(overrides)
    return Policy(**fields)


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "policies.duckdb"


def seed(db_path, *policies: Policy) -> None:
    with store.transaction(db_path) as conn:
        for policy in policies:
            store.insert_policy(conn, policy)


def test_get_policy_round_trips_fields(db_path):
    policy = make_policy("p1", tags=["hedge", "q3"], on_chain_policy_id="7", description="test")
    seed(db_path, policy)

    loaded = policy_queries.get_policy("p1", db_path=db_path)
    assert loaded == policy
    assert policy_queries.get_policy("missing", db_path=db_path) is None


def test_policies_for_user_newest_first_with_limit(db_path):
    seed(
        db_path,
        *(make_policy(f"p{i}", creation_timestamp=1_000 + i) for i in range(12)),
        make_policy("other", owner=PROVIDER, counterparty=BUYER, creation_timestamp=9_999),
    )

    policies = policy_queries.get_policies_for_user(Identity(BUYER), db_path=db_path)
    assert len(policies) == policy_queries.USER_POLICIES_DEFAULT_LIMIT
    assert policies[0].id == "p11"
    assert all(p.owner == BUYER for p in policies)


def test_policies_for_user_filters(db_path):
    seed(
        db_path,
        make_policy("put-active"),
        make_policy("put-expired", status=PolicyStatus.EXPIRED, creation_timestamp=2_000),
        make_policy(
            "call-active",
            policy_type=PolicyType.CALL,
            position_type=PositionType.LONG_CALL,
            creation_timestamp=3_000,
        ),
    )
    identity = Identity(BUYER)

    active = policy_queries.get_policies_for_user(
        identity, status_filter=[PolicyStatus.ACTIVE], db_path=db_path
    )
    assert {p.id for p in active} == {"put-active", "call-active"}

    calls = policy_queries.get_policies_for_user(
        identity, policy_type_filter=PolicyType.CALL, db_path=db_path
    )
    assert [p.id for p in calls] == ["call-active"]

    window = policy_queries.get_policies_for_user(
        identity, from_timestamp=1_500, to_timestamp=2_500, db_path=db_path
    )
    assert [p.id for p in window] == ["put-expired"]


def test_counterparty_page_reports_total(db_path):
    seed(
        db_path,
        *(make_policy(f"p{i}", creation_timestamp=i) for i in range(5)),
        make_policy("sbtc", collateral_token=TokenType.SBTC, creation_timestamp=10),
    )
    page = policy_queries.get_policies_for_counterparty(
        Identity(PROVIDER), limit=2, offset=1, db_path=db_path
    )
    assert page.total == 6
    assert [p.id for p in page.policies] == ["p4", "p3"]

    sbtc = policy_queries.get_policies_for_counterparty(
        Identity(PROVIDER), collateral_token_filter=TokenType.SBTC, db_path=db_path
    )
    assert sbtc.total == 1


def test_queries_require_identity(db_path):
    with pytest.raises(NotAuthenticatedError):
        policy_queries.get_policies_for_user(None, db_path=db_path)
    with pytest.raises(NotAuthenticatedError):
        policy_queries.get_policies_for_counterparty(Identity(""), db_path=db_path)
    with pytest.raises(NotAuthenticatedError):
        policy_queries.get_counterparty_income_stats(None, db_path=db_path)


def test_income_stats_empty(db_path):
    stats = policy_queries.get_counterparty_income_stats(Identity(PROVIDER), db_path=db_path)
    assert stats == policy_queries.IncomeStats()
    assert stats.total_policies == 0
    assert stats.total_premium_earned == 0
    assert stats.token_breakdown == {}


def test_income_stats_aggregates_by_token(db_path):
    seed(
        db_path,
        make_policy("active-stx", premium=100.0, protection_amount=0.5),
        make_policy(
            "expired-paid",
            status=PolicyStatus.EXPIRED,
            premium=40.0,
            premium_distributed=True,
        ),
        make_policy("expired-unpaid", status=PolicyStatus.EXPIRED, premium=25.0),
        make_policy(
            "settled-sbtc",
            status=PolicyStatus.SETTLED,
            collateral_token=TokenType.SBTC,
            premium=60.0,
        ),
        make_policy(
            "active-sbtc",
            collateral_token=TokenType.SBTC,
            premium=10.0,
            protection_amount=0.25,
        ),
        make_policy("not-mine", counterparty=BUYER),
    )

    stats = policy_queries.get_counterparty_income_stats(Identity(PROVIDER), db_path=db_path)
    assert stats.total_policies == 5
    assert stats.active_policies == 2
    assert stats.expired_policies == 2
    assert stats.exercised_policies == 1
    assert stats.total_premium_earned == pytest.approx(40.0)
    assert stats.pending_premiums == pytest.approx(25.0)
    assert stats.active_exposure == pytest.approx(0.75)

    stx = stats.token_breakdown["STX"]
    assert stx.total_policies == 3
    assert stx.active_policies == 1
    assert stx.earned_premium == pytest.approx(40.0)
    assert stx.pending_premium == pytest.approx(25.0)
    sbtc = stats.token_breakdown["sBTC"]
    assert sbtc.total_policies == 2
    assert sbtc.active_exposure == pytest.approx(0.25)
    assert isinstance(sbtc.active_policies, int)


def test_policy_events_newest_first(db_path):
    seed(db_path, make_policy("p1"))
    with store.transaction(db_path) as conn:
        store.insert_policy_event(conn, "p1", PolicyEventType.CREATED, {"n": 1}, timestamp=10)
        store.insert_policy_event(conn, "p1", PolicyEventType.ACCEPTED, {"n": 2}, timestamp=20)
        store.insert_policy_event(conn, "p1", PolicyEventType.STATUS_UPDATE, {"n": 3}, timestamp=20)

    events = policy_queries.get_policy_events("p1", db_path=db_path)
    assert [e.data["n"] for e in events] == [3, 2, 1]
    assert events[-1].event_type is PolicyEventType.CREATED


def test_counterparty_page_honours_zero_limit(db_path):
    seed(db_path, *(make_policy(f"p{i}", creation_timestamp=i) for i in range(3)))
    page = policy_queries.get_policies_for_counterparty(Identity(PROVIDER), limit=0, db_path=db_path)
    assert page.total == 3
    assert page.policies == []
