try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from podio_portal.core.config import OAuthSettings
from podio_portal.core.errors import InvalidStateError
from podio_portal.services.oauth_state import OAuthStateStore


def _store(record_store, clock) -> OAuthStateStore:
    return OAuthStateStore(record_store, OAuthSettings(state_ttl_seconds=600), clock=clock)


def test_issued_state_is_consumed_once(record_store, clock) -> None:
    store = _store(record_store, clock)
    issued = store.issue()

    consumed = store.consume(issued.state)
    assert consumed.state == issued.state

    with pytest.raises(InvalidStateError):
        store.consume(issued.state)


def test_states_are_unique(record_store, clock) -> None:
    store = _store(record_store, clock)
    assert store.issue().state != store.issue().state


@pytest.mark.parametrize("value", ["", "never-issued"])
def test_unknown_or_missing_state_is_rejected(record_store, clock, value) -> None:
    with pytest.raises(InvalidStateError):
        _store(record_store, clock).consume(value)


def test_expired_state_is_rejected_and_removed(record_store, clock) -> None:
    store = _store(record_store, clock)
    issued = store.issue()
    clock.advance(seconds=601)

    with pytest.raises(InvalidStateError):
        store.consume(issued.state)
    assert (
        record_store.get_item(
            partition_key=OAuthStateStore.PARTITION_KEY,
            sort_key=f"{OAuthStateStore.SORT_PREFIX}{issued.state}",
        )
        is None
    )


def test_purge_expired_keeps_live_states(record_store, clock) -> None:
    store = _store(record_store, clock)
    stale = store.issue()
    clock.advance(seconds=500)
    live = store.issue()
    clock.advance(seconds=200)

    assert store.purge_expired() == 1
    assert store.consume(live.state).state == live.state
    with pytest.raises(InvalidStateError):
        store.consume(stale.state)


def test_issue_drops_states_that_expired_unused(record_store, clock) -> None:
    store = _store(record_store, clock)
    for _ in range(3):
        store.issue()
    clock.advance(seconds=601)

    fresh = store.issue()

    rows = record_store.list_items_with_prefix(
        partition_key=OAuthStateStore.PARTITION_KEY,
        sort_key_prefix=OAuthStateStore.SORT_PREFIX,
    )
    assert [row["state"] for row in rows] == [fresh.state]
