import pytest

from lunaplan.db import session_scope
from lunaplan.models import Account


def test_session_scope_rolls_back_on_error(session_factory, db_session):
    with pytest.raises(RuntimeError):
        with session_scope(session_factory) as db:
            db.add(Account(user_id="scoped-user", subscription_status="active"))
            db.flush()
            raise RuntimeError("boom")

    assert db_session.query(Account).filter(Account.user_id == "scoped-user").first() is None


def test_session_scope_keeps_committed_work(session_factory, db_session):
    with session_scope(session_factory) as db:
        db.add(Account(user_id="scoped-user", subscription_status="active"))
        db.commit()

    assert db_session.query(Account).filter(Account.user_id == "scoped-user").one()
