import os

# Must be set before backoffice.db.session is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["SEND_EMAILS"] = "0"
os.environ.setdefault("IDENTITY_SECRET_KEY", "test-secret")

import pytest  # noqa: E402

from backoffice.db.session import engine  # noqa: E402
from backoffice.models import Base  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield
