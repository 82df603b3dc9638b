"""Initialize the ledger tables and seed reference categories."""
from db.connection import engine, session_scope
from models.transaction import Base, Category
import models.goal  # noqa: F401
import models.allocation  # noqa: F401

# (name, category_type, color)
DEFAULT_CATEGORIES = [
    ("Paycheck", "income", "#2e7d32"),
    ("Interest", "income", "#388e3c"),
    ("Transfer", "transfer", "#757575"),
    ("Groceries", "expense", "#f9a825"),
    ("Dining Out", "expense", "#ef6c00"),
    ("Shopping", "expense", "#6a1b9a"),
    ("Healthcare", "expense", "#c62828"),
    ("Travel", "expense", "#0277bd"),
    ("Bills & Utilities", "expense", "#455a64"),
    ("Auto & Transport", "expense", "#5d4037"),
    ("Entertainment", "expense", "#ad1457"),
]


def init_tables():
    """Create all ledger tables if they don't exist."""
    Base.metadata.create_all(bind=engine)
    print("✓ ledger tables initialized successfully")


def seed_categories():
    """Insert the default categories that are missing, by name."""
    with session_scope() as session:
        existing = {name for (name,) in session.query(Category.name).all()}
        added = 0
        for sort_order, (name, category_type, color) in enumerate(DEFAULT_CATEGORIES):
            if name in existing:
                continue
            session.add(Category(name=name, category_type=category_type, color=color, sort_order=sort_order))
            added += 1
    print(f"✓ categories seeded ({added} added)")
    return added


if __name__ == "__main__":
    init_tables()
    seed_categories()
