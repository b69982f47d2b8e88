import asyncio
from datetime import datetime, timedelta

from sweep import SweepJob, auto_complete_orders

NOW = datetime(2024, 5, 20, 12, 0)


def _order(db, user, status, received_days_ago=None):
    received_at = NOW - timedelta(days=received_days_ago) if received_days_ago is not None else None
    return db["order"].insert_one({
        "user_id": user["_id"],
        "status": status,
        "timestamps": {"received_at": received_at},
        "created_at": NOW - timedelta(days=30),
    }).inserted_id


def test_completes_orders_received_long_enough_ago(db, user):
    old = _order(db, user, "RECEIVED", received_days_ago=8)
    exact = _order(db, user, "RECEIVED", received_days_ago=7)
    fresh = _order(db, user, "RECEIVED", received_days_ago=2)

    assert auto_complete_orders(NOW) == 2

    assert db["order"].find_one({"_id": old})["status"] == "COMPLETED"
    assert db["order"].find_one({"_id": exact})["timestamps"]["completed_at"] == NOW
    assert db["order"].find_one({"_id": fresh})["status"] == "RECEIVED"


def test_other_statuses_are_untouched(db, user):
    shipping = _order(db, user, "SHIPPING", received_days_ago=30)
    assert auto_complete_orders(NOW) == 0
    assert db["order"].find_one({"_id": shipping})["status"] == "SHIPPING"


def test_run_once_counts_and_survives_errors(db, user, monkeypatch):
    _order(db, user, "RECEIVED", received_days_ago=10)
    job = SweepJob(interval=3600)
    assert asyncio.run(job.run_once()) == 1

    def boom(now=None):
        raise RuntimeError("database down")

    monkeypatch.setattr("sweep.auto_complete_orders", boom)
    assert asyncio.run(job.run_once()) == 0


def test_start_and_stop():
    async def scenario():
        job = SweepJob(interval=3600)
        job.start()
        assert job.running
        await job.stop()
        assert not job.running

    asyncio.run(scenario())
