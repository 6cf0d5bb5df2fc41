import pytest

from app.core.errors import ConflictError, InvalidRequest, NotFoundError, PermissionDenied
from app.models.post import Post
from app.services import post_service


def test_snapshot_failure_keeps_database_write(db, services, monkeypatch):
    def refuse(key, data, **kwargs):
        raise OSError("bucket unavailable")

    monkeypatch.setattr(services.blob, "save", refuse)
    post = post_service.create_post(db, services, author_id="u1", ticker="005930", initial_price=100.0)
    assert db.get(Post, post["id"]) is not None
    assert services.store.read_snapshot()["posts"] == []


def test_average_down_compare_and_swap(db, services, session_factory, monkeypatch):
    post = post_service.create_post(db, services, author_id="u1", ticker="005930", initial_price=100.0)
    real_price = post_service._snapshot_price

    def racing_price(svc, ticker):
        # another request appends its entry between our read and our write
        other = session_factory()
        other.query(Post).filter(Post.id == post["id"]).update({Post.entry_count: Post.entry_count + 1})
        other.commit()
        other.close()
        return real_price(svc, ticker)

    monkeypatch.setattr(post_service, "_snapshot_price", racing_price)
    with pytest.raises(ConflictError):
        post_service.average_down(db, services, post["id"], "u1")


def test_average_down_falls_back_to_stored_price(db, services):
    post = post_service.create_post(db, services, author_id="u1", ticker="005930", initial_price=100.0)
    services.store.write_snapshot({"posts": [], "prices": {}})
    result = post_service.average_down(db, services, post["id"], "u1", quantity=2)
    assert result["entries"][0] == {
        "price": 100.0,
        "date": result["entries"][0]["date"],
        "timestamp": result["entries"][0]["timestamp"],
        "quantity": 2,
    }


def test_close_uses_stored_rate_when_not_given(db, services):
    post = post_service.create_post(db, services, author_id="u1", ticker="005930", initial_price=100.0)
    row = db.get(Post, post["id"])
    row.return_rate = 4.256
    db.commit()
    closed = post_service.close_position(db, services, post["id"], "u1", closed_price=104.0)
    assert closed["closed_return_rate"] == 4.26
    assert closed["currentPrice"] == 104.0


def test_ownership_and_missing_posts(db, services):
    post = post_service.create_post(db, services, author_id="u1", ticker="AAPL", initial_price=150.0)
    with pytest.raises(PermissionDenied):
        post_service.close_position(db, services, post["id"], "u2")
    with pytest.raises(NotFoundError):
        post_service.delete_post(db, services, "missing", "u1")
    with pytest.raises(InvalidRequest):
        post_service.update_post(db, services, post["id"], "u1", initial_price=1.0)


def test_sell_opinion_defaults_to_short(db, services):
    post = post_service.create_post(db, services, author_id="u1", ticker="TSLA", initial_price=200.0, opinion="SELL")
    assert post["positionType"] == "short"
    assert post["exchange"] == "NAS"
