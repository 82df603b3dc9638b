from datetime import date, timedelta

import pytest

from services import matching_service
from services.matching_service import next_window, normalize_window, search, significant_tokens, token_overlap
from tests.helpers.ledger import make_category, make_transaction

TODAY = date(2025, 6, 15)


def _ids(rows):
    return [r.id for r in rows]


def test_window_steps_widen_and_clamp():
    assert next_window(90) == 180
    assert next_window(180) == 365
    assert next_window(365) == 730
    assert next_window(730) is None
    assert normalize_window(5000) == 730
    assert normalize_window(0) == 1


def test_generic_refund_words_are_ignored():
    assert significant_tokens("AMAZON.COM REFUND 1234") == ["amazon"]
    assert token_overlap("Target Refund", "TARGET T-1234 AUSTIN") == 1.0
    assert token_overlap("Refund", "Target") == 0.0


def test_same_merchant_same_amount_is_suggested(session):
    purchase = make_transaction(-42.17, "Target", on=TODAY - timedelta(days=2))
    make_transaction(-42.50, "Walgreens", on=TODAY - timedelta(days=1))

    result = search(
        session,
        "return",
        credit_amount_cents=4217,
        credit_description="Target Refund",
        today=TODAY,
    )

    assert result["suggested"].id == purchase
    assert result["suggested_score"] > matching_service.SUGGESTION_THRESHOLD


def test_purchase_outside_window_appears_after_widening(session):
    # The window counts back from today, so a purchase 85 days before a
    # 10-day-old credit falls outside the first 90 days
    credit_date = TODAY - timedelta(days=10)
    costco = make_transaction(-200, "Costco", on=credit_date - timedelta(days=85))

    first = search(session, "return", q="costco", days=90, today=TODAY)
    assert _ids(first["results"]) == []
    assert first["next_days"] == 180
    assert first["exhausted"] is False

    wider = search(session, "return", q="costco", days=first["next_days"], today=TODAY)
    assert _ids(wider["results"]) == [costco]


def test_window_beyond_ceiling_is_clamped_and_exhausted(session):
    make_transaction(-10, "Ancient", on=TODAY - timedelta(days=900))
    recent = make_transaction(-10, "Recent", on=TODAY - timedelta(days=700))

    result = search(session, "return", days=10000, today=TODAY)

    assert result["days"] == 730
    assert result["next_days"] is None
    assert result["exhausted"] is True
    assert _ids(result["results"]) == [recent]


def test_weak_match_is_not_suggested(session):
    make_transaction(-500, "Home Depot", on=TODAY - timedelta(days=80))

    result = search(
        session, "return", credit_amount_cents=1999, credit_description="Etsy refund", today=TODAY
    )

    assert result["suggested"] is None
    assert result["suggested_score"] is None


def test_tagged_lists_pending_returns_only(session):
    pending = make_transaction(-60, "Zara", on=TODAY - timedelta(days=5), is_return=True, return_status="pending")
    make_transaction(-60, "H&M", on=TODAY - timedelta(days=5), is_return=True, return_status="received",
                     remaining_cents=0, allocated_cents=6000)
    make_transaction(-30, "Uniqlo", on=TODAY - timedelta(days=5))

    result = search(session, "return", today=TODAY)

    assert _ids(result["tagged"]) == [pending]


def test_healthcare_tagged_includes_partial_claims(session):
    pending = make_transaction(-120, "Dr Smith", on=TODAY - timedelta(days=3), is_healthcare=True,
                               reimbursement_status="pending")
    partial = make_transaction(-80, "CVS Pharmacy", on=TODAY - timedelta(days=10), is_healthcare=True,
                               reimbursement_status="partial", remaining_cents=3000, allocated_cents=5000)

    result = search(session, "healthcare", today=TODAY)

    assert _ids(result["tagged"]) == [pending, partial]


def test_fully_matched_expenses_are_excluded_everywhere(session):
    make_transaction(-150, "Amazon", on=TODAY - timedelta(days=4), is_return=True, return_status="pending",
                     remaining_cents=0, allocated_cents=15000)

    result = search(
        session, "return", credit_amount_cents=15000, credit_description="Amazon refund", today=TODAY
    )

    assert result["tagged"] == []
    assert result["results"] == []
    assert result["suggested"] is None


def test_text_search_matches_category_name(session):
    clothing = make_category("Clothing")
    jacket = make_transaction(-90, "Patagonia", on=TODAY - timedelta(days=7), category_id=clothing)
    make_transaction(-12, "Chipotle", on=TODAY - timedelta(days=7))

    result = search(session, "return", q="CLOTH", today=TODAY)

    assert _ids(result["results"]) == [jacket]


def test_text_search_treats_wildcards_literally(session):
    underscore = make_transaction(-30, "H_M Outlet", on=TODAY - timedelta(days=3))
    make_transaction(-30, "HAM Radio Shack", on=TODAY - timedelta(days=3))
    percent = make_transaction(-45, "50% off sale", on=TODAY - timedelta(days=4))
    make_transaction(-45, "500 widgets", on=TODAY - timedelta(days=4))

    assert _ids(search(session, "return", q="h_m", today=TODAY)["results"]) == [underscore]
    assert _ids(search(session, "return", q="50%", today=TODAY)["results"]) == [percent]


def test_category_filter_and_limit(session):
    travel = make_category("Travel")
    for offset in range(5):
        make_transaction(-100 - offset, f"Delta {offset}", on=TODAY - timedelta(days=offset + 1), category_id=travel)
    make_transaction(-20, "Lyft", on=TODAY - timedelta(days=1))

    result = search(session, "return", category_id=travel, limit=3, today=TODAY)

    assert len(result["results"]) == 3
    assert [r.description for r in result["results"]] == ["Delta 0", "Delta 1", "Delta 2"]


def test_unknown_search_type_is_rejected(session):
    with pytest.raises(ValueError):
        search(session, "groceries", today=TODAY)
