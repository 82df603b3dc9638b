"""Candidate search for matching a credit to a return or healthcare expense.

Three lists come back for a search:

- ``tagged``: expenses already flagged as a pending return (or a pending /
  partially reimbursed healthcare claim) that still have money unmatched.
- ``suggested``: the single best-scoring candidate, when it clears
  ``SUGGESTION_THRESHOLD``.
- ``results``: every open expense in the window, newest first, paginated.

Windows widen progressively (90 -> 180 -> 365 -> 730 days) when the caller
asks for older transactions; nothing older than 730 days is ever returned.
"""
import logging
import re
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.transaction import Transaction, Category

logger = logging.getLogger(__name__)

WINDOW_STEPS = (90, 180, 365, 730)
MAX_WINDOW_DAYS = WINDOW_STEPS[-1]
DEFAULT_LIMIT = 50

SUGGESTION_THRESHOLD = 0.55
AMOUNT_WEIGHT = 0.5
TEXT_WEIGHT = 0.3
RECENCY_WEIGHT = 0.2

# Words that show up on refund lines without naming the merchant
_GENERIC_TOKENS = {
    "refund", "refunds", "return", "returned", "returns", "credit", "credits",
    "reimbursement", "reimb", "payment", "pmt", "deposit", "ach", "adj",
    "adjustment", "purchase", "pos", "debit", "the", "and", "for", "from",
    "inc", "llc", "com", "www", "co",
}
_TOKEN_RE = re.compile(r"[a-z0-9]+")

SEARCH_TYPES = ("return", "healthcare")


def normalize_window(days: int) -> int:
    return max(1, min(days, MAX_WINDOW_DAYS))


def next_window(days: int) -> Optional[int]:
    """Next wider window after ``days``, or None once the ceiling is reached."""
    for step in WINDOW_STEPS:
        if step > days:
            return step
    return None


def significant_tokens(text: Optional[str]) -> List[str]:
    if not text:
        return []
    tokens = []
    for token in _TOKEN_RE.findall(text.lower()):
        if len(token) < 2 or token in _GENERIC_TOKENS or token.isdigit():
            continue
        if token not in tokens:
            tokens.append(token)
    return tokens


def token_overlap(credit_description: Optional[str], candidate_description: Optional[str]) -> float:
    """Share of the credit's merchant words found in the candidate description."""
    tokens = significant_tokens(credit_description)
    if not tokens or not candidate_description:
        return 0.0
    haystack = candidate_description.lower()
    words = set(_TOKEN_RE.findall(haystack))
    matched = sum(1 for t in tokens if t in words or (len(t) >= 3 and t in haystack))
    return matched / len(tokens)


def score_candidate(
    candidate: Transaction,
    credit_amount_cents: Optional[int],
    credit_description: Optional[str],
    days: int,
    today: date,
) -> float:
    amount_score = 0.0
    if credit_amount_cents:
        gap = abs(credit_amount_cents - candidate.abs_cents)
        amount_score = max(0.0, 1.0 - gap / credit_amount_cents)

    text_score = token_overlap(credit_description, candidate.description)

    age = (today - candidate.date).days
    recency_score = min(1.0, max(0.0, 1.0 - age / days))

    return AMOUNT_WEIGHT * amount_score + TEXT_WEIGHT * text_score + RECENCY_WEIGHT * recency_score


def pick_suggestion(
    candidates: Iterable[Transaction],
    credit_amount_cents: Optional[int],
    credit_description: Optional[str],
    days: int,
    today: date,
) -> Tuple[Optional[Transaction], Optional[float]]:
    best = None
    best_key = None
    best_score = None
    for candidate in candidates:
        score = score_candidate(candidate, credit_amount_cents, credit_description, days, today)
        key = (score, candidate.date, candidate.id)
        if best_key is None or key > best_key:
            best, best_key, best_score = candidate, key, score
    if best is None or best_score <= SUGGESTION_THRESHOLD:
        return None, None
    return best, best_score


def _base_query(db: Session, cutoff: date, q: Optional[str], category_id: Optional[int]):
    query = (
        db.query(Transaction)
        .outerjoin(Category, Transaction.category_id == Category.id)
        .filter(
            Transaction.amount_cents < 0,
            Transaction.date >= cutoff,
            # Fully matched expenses cannot take another allocation
            or_(Transaction.remaining_cents.is_(None), Transaction.remaining_cents > 0),
        )
    )
    if category_id is not None:
        query = query.filter(Transaction.category_id == category_id)
    if q:
        # Plain substring match; % and _ in the query are literal
        escaped = q.replace("\\", "\\\\").replace("%", r"\%").replace("_", r"\_")
        pattern = f"%{escaped}%"
        query = query.filter(
            or_(
                Transaction.description.ilike(pattern, escape="\\"),
                Category.name.ilike(pattern, escape="\\"),
            )
        )
    return query


def search(
    db: Session,
    search_type: str,
    q: Optional[str] = None,
    category_id: Optional[int] = None,
    days: int = WINDOW_STEPS[0],
    credit_amount_cents: Optional[int] = None,
    credit_description: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    today: Optional[date] = None,
) -> dict:
    """Search for transactions a credit could be matched against.

    Args:
        db: Database session
        search_type: 'return' or 'healthcare'
        q: Case-insensitive substring over description and category name
        category_id: Restrict candidates to one category
        days: Look-back window; clamped to 730
        credit_amount_cents: Credit's open amount, used for suggestion scoring
        credit_description: Credit's description, used for suggestion scoring
        limit: Maximum rows in ``results``
        today: Anchor for the window (defaults to the current date)
    """
    if search_type not in SEARCH_TYPES:
        raise ValueError(f"Unsupported search type: {search_type}")

    today = today or date.today()
    days = normalize_window(days)
    cutoff = today - timedelta(days=days)
    q = q.strip() if q else None

    tagged_query = _base_query(db, cutoff, q, category_id)
    if search_type == "return":
        tagged_query = tagged_query.filter(
            Transaction.is_return.is_(True),
            Transaction.return_status == "pending",
        )
    else:
        tagged_query = tagged_query.filter(
            Transaction.is_healthcare.is_(True),
            Transaction.reimbursement_status.in_(("pending", "partial")),
        )
    tagged = tagged_query.order_by(Transaction.date.desc(), Transaction.id.desc()).all()

    results = (
        _base_query(db, cutoff, q, category_id)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .limit(limit)
        .all()
    )

    suggested, suggested_score = None, None
    if credit_amount_cents or credit_description:
        pool = {t.id: t for t in tagged}
        for t in results:
            pool.setdefault(t.id, t)
        suggested, suggested_score = pick_suggestion(
            pool.values(), credit_amount_cents, credit_description, days, today
        )

    logger.info(
        f"Search type={search_type} days={days} q={q!r}: "
        f"{len(tagged)} tagged, {len(results)} results, suggested={suggested.id if suggested else None}"
    )
    return {
        "tagged": tagged,
        "suggested": suggested,
        "suggested_score": suggested_score,
        "results": results,
        "days": days,
        "next_days": next_window(days),
        "exhausted": days >= MAX_WINDOW_DAYS,
    }
