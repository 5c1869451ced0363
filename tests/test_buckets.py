import threading

from conftest import local_ts
from ledger_app.ledger.buckets import BucketLedger
from ledger_app.ledger.models import LedgerState
from ledger_app.ledger.storage import MemoryStore, SqliteStore


def _fields(store, *names):
    return store.get(names)


def test_first_reconcile_never_accrues(noon):
    store = MemoryStore({"lastTickAt": noon - 3 * 3600})
    ledger = BucketLedger(store)
    state = ledger.reconcile(noon)
    assert state.today.seconds == 0
    assert _fields(store, "todaySeconds", "dayKey", "weekKey", "monthKey", "lastTickAt") == {
        "todaySeconds": 0,
        "dayKey": "2024-01-02",
        "weekKey": "2024-W01",
        "monthKey": "2024-01",
        "lastTickAt": noon,
    }


def test_continuous_engagement_accrues_n_times_period(clock):
    store = MemoryStore()
    ledger = BucketLedger(store, clock=clock)
    ledger.prime()
    for _ in range(12):
        clock.advance(5)
        ledger.reconcile()
    assert _fields(store, "todaySeconds", "weekSeconds", "monthSeconds") == {
        "todaySeconds": 60,
        "weekSeconds": 60,
        "monthSeconds": 60,
    }


def test_fractional_ticks_do_not_drift(clock):
    store = MemoryStore()
    ledger = BucketLedger(store, clock=clock)
    ledger.prime()
    for _ in range(10):
        clock.advance(5.5)
        ledger.reconcile()
    assert store.get(["todaySeconds"]) == {"todaySeconds": 55}


def test_reconcile_is_idempotent_for_same_now(noon):
    store = MemoryStore()
    ledger = BucketLedger(store)
    ledger.prime(noon)
    ledger.reconcile(noon + 10)
    before = store.dump()
    ledger.reconcile(noon + 10)
    assert store.dump() == before


def test_non_qualifying_span_is_consumed_not_accrued(noon):
    store = MemoryStore()
    ledger = BucketLedger(store)
    ledger.prime(noon)
    ledger.reconcile(noon + 5, qualifying=False)
    ledger.reconcile(noon + 10, qualifying=True)
    assert store.get(["todaySeconds"]) == {"todaySeconds": 5}


def test_clock_regression_never_subtracts(noon):
    store = MemoryStore()
    ledger = BucketLedger(store)
    ledger.prime(noon)
    ledger.reconcile(noon + 20)
    state = ledger.reconcile(noon + 5)
    assert state.today.seconds == 20
    ledger.reconcile(noon + 10)
    assert store.get(["todaySeconds"]) == {"todaySeconds": 25}


def test_day_rollover_keeps_week_and_month():
    store = MemoryStore()
    ledger = BucketLedger(store)
    start = local_ts(2024, 1, 2, 23, 59, 50)
    ledger.prime(start)
    ledger.reconcile(start + 5)
    state = ledger.reconcile(local_ts(2024, 1, 3, 0, 0, 5))
    assert state.today.key == "2024-01-03"
    assert state.today.seconds == 10
    assert state.week.seconds == 15
    assert state.month.seconds == 15


def test_week_rolls_without_month(noon):
    sunday = local_ts(2024, 1, 7, 23, 59, 55)
    store = MemoryStore(
        {
            "todaySeconds": 100,
            "weekSeconds": 500,
            "monthSeconds": 900,
            "dayKey": "2024-01-07",
            "weekKey": "2024-W01",
            "monthKey": "2024-01",
        }
    )
    ledger = BucketLedger(store)
    ledger.prime(sunday)
    state = ledger.reconcile(local_ts(2024, 1, 8, 0, 0, 5))
    assert (state.today.seconds, state.week.seconds, state.month.seconds) == (10, 10, 910)
    assert state.week.key == "2024-W02"


def test_month_rolls_mid_week():
    store = MemoryStore(
        {
            "todaySeconds": 30,
            "weekSeconds": 300,
            "monthSeconds": 3000,
            "dayKey": "2024-01-31",
            "weekKey": "2024-W05",
            "monthKey": "2024-01",
        }
    )
    ledger = BucketLedger(store)
    ledger.prime(local_ts(2024, 1, 31, 23, 59, 58))
    state = ledger.reconcile(local_ts(2024, 2, 1, 0, 0, 2))
    assert (state.today.seconds, state.week.seconds, state.month.seconds) == (4, 304, 4)
    assert state.month.key == "2024-02"


def test_stale_bucket_resets_even_without_activity(noon):
    store = MemoryStore({"todaySeconds": 77, "dayKey": "2023-12-31"})
    ledger = BucketLedger(store)
    ledger.reconcile(noon, qualifying=False)
    assert store.get(["todaySeconds", "dayKey"]) == {"todaySeconds": 0, "dayKey": "2024-01-02"}


def test_storage_failure_skips_tick_and_recovers(noon):
    store = MemoryStore()
    ledger = BucketLedger(store)
    ledger.prime(noon)
    store.available = False
    assert ledger.reconcile(noon + 5) is None
    store.available = True
    state = ledger.reconcile(noon + 10)
    assert state.today.seconds == 10


def test_malformed_counters_are_treated_as_zero(noon):
    store = MemoryStore({"todaySeconds": -40, "dayKey": "2024-01-02", "weekSeconds": "x", "weekKey": "2024-W01"})
    ledger = BucketLedger(store)
    ledger.prime(noon)
    state = ledger.reconcile(noon + 5)
    assert state.today.seconds == 5
    assert state.week.seconds == 5


def test_unserialized_read_modify_write_loses_time(noon):
    """Two page instances doing a bare read-then-write clobber each other."""
    store = MemoryStore({"todaySeconds": 100})
    first = LedgerState.from_record(store.get(["todaySeconds"]))
    second = LedgerState.from_record(store.get(["todaySeconds"]))
    store.set({"todaySeconds": first.today.seconds + 5})
    store.set({"todaySeconds": second.today.seconds + 7})
    assert store.get(["todaySeconds"]) == {"todaySeconds": 107}


def test_interleaved_instances_preserve_both_deltas(noon):
    store = MemoryStore()
    tab_a = BucketLedger(store)
    tab_b = BucketLedger(store)
    tab_a.prime(noon)
    tab_b.prime(noon + 2)
    tab_a.reconcile(noon + 5)
    tab_b.reconcile(noon + 7, qualifying=False)
    tab_a.reconcile(noon + 10)
    tab_b.reconcile(noon + 12)
    # a claims 10s, b only its own qualifying 5s span
    assert store.get(["todaySeconds"]) == {"todaySeconds": 15}


def test_concurrent_instances_on_shared_sqlite(tmp_path, noon):
    path = tmp_path / "shared.db"
    ticks = 20
    ledgers = [BucketLedger(SqliteStore(path)) for _ in range(2)]
    for ledger in ledgers:
        ledger.prime(noon)

    def run(ledger):
        for i in range(1, ticks + 1):
            ledger.reconcile(noon + 5 * i)

    threads = [threading.Thread(target=run, args=(ledger,)) for ledger in ledgers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    fields = SqliteStore(path).get(["todaySeconds", "weekSeconds", "monthSeconds"])
    assert fields == {"todaySeconds": 200, "weekSeconds": 200, "monthSeconds": 200}
