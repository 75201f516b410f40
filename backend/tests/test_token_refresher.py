from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from models import InstagramAccount
from services import token_refresher
from services.dates import as_utc
from services.errors import RefreshError
from services.token_refresher import (
    get_accounts_needing_refresh,
    refresh_access_token,
    refresh_expiring_tokens,
)


def soon(hours=2):
    return datetime.now(timezone.utc) + timedelta(hours=hours)


async def test_refresh_access_token_posts_refresh_grant(graph_api, graph_client):
    graph_api.refreshable["r-1"] = {"access_token": "new-token", "expires_in": 5184000}

    token = await refresh_access_token("r-1", client=graph_client)

    assert token.access_token == "new-token"
    assert token.expires_in == 5184000
    request = graph_api.calls_to("/refresh_access_token")[0]
    assert b"grant_type=refresh_token" in request.content


async def test_refresh_access_token_rejects_bad_grant(graph_client):
    with pytest.raises(RefreshError) as exc_info:
        await refresh_access_token("unknown", client=graph_client)
    assert exc_info.value.status_code == 400


async def test_only_active_accounts_expiring_in_window_are_selected(db, make_user, make_account):
    user = await make_user()
    expiring = await make_account(user, "expiring", token_expires_at=soon(2))
    await make_account(user, "fresh", token_expires_at=soon(24 * 20))
    await make_account(user, "inactive", token_expires_at=soon(2), is_active=False)

    accounts = await get_accounts_needing_refresh(db, window_hours=24)

    assert [a.id for a in accounts] == [expiring.id]


async def test_successful_refresh_updates_token_and_expiry(db, graph_api, graph_client, make_user, make_account):
    user = await make_user()
    account = await make_account(user, "alice", refresh_token="r-1", token_expires_at=soon(2))
    graph_api.refreshable["r-1"] = {"access_token": "new-token", "expires_in": 60 * 24 * 3600}

    summary = await refresh_expiring_tokens(db, window_hours=24, client=graph_client)

    assert summary.refreshed == 1
    assert summary.deactivated == 0
    refreshed = await db.scalar(
        select(InstagramAccount)
        .where(InstagramAccount.id == account.id)
        .execution_options(populate_existing=True)
    )
    assert refreshed.access_token == "new-token"
    assert refreshed.is_active is True
    assert as_utc(refreshed.token_expires_at) > soon(24 * 50)


async def test_failed_refresh_deactivates_account(db, graph_client, make_user, make_account):
    user = await make_user()
    account = await make_account(user, "alice", refresh_token="revoked", token_expires_at=soon(2))

    summary = await refresh_expiring_tokens(db, window_hours=24, client=graph_client)

    assert summary.deactivated == 1
    assert summary.errors and summary.errors[0].startswith("alice:")
    refreshed = await db.scalar(
        select(InstagramAccount)
        .where(InstagramAccount.id == account.id)
        .execution_options(populate_existing=True)
    )
    assert refreshed.is_active is False


async def test_account_without_refresh_token_is_skipped(db, graph_client, make_user, make_account):
    user = await make_user()
    account = await make_account(user, "alice", refresh_token=None, token_expires_at=soon(2))

    summary = await refresh_expiring_tokens(db, window_hours=24, client=graph_client)

    assert summary.checked == 1
    assert summary.skipped == 1
    assert summary.deactivated == 0
    assert (await db.get(InstagramAccount, account.id)).is_active is True


async def test_store_failure_on_one_account_does_not_stop_the_scan(
    db, graph_api, graph_client, make_user, make_account, monkeypatch
):
    user = await make_user()
    alice = await make_account(user, "alice", refresh_token="r-alice", token_expires_at=soon(2))
    bob = await make_account(user, "bob", refresh_token="r-bob", token_expires_at=soon(3))
    alice_id, bob_id = alice.id, bob.id
    graph_api.refreshable["r-alice"] = {"access_token": "new-alice", "expires_in": 3600}
    graph_api.refreshable["r-bob"] = {"access_token": "new-bob", "expires_in": 3600}

    store_token = token_refresher.update_account_token

    async def locked_for_alice(db, account_id, access_token, expires_in):
        if account_id == alice_id:
            raise OperationalError("UPDATE instagram_accounts", {}, Exception("database is locked"))
        await store_token(db, account_id, access_token, expires_in)

    monkeypatch.setattr(token_refresher, "update_account_token", locked_for_alice)

    summary = await refresh_expiring_tokens(db, window_hours=24, client=graph_client)

    assert summary.checked == 2
    assert summary.refreshed == 1
    assert len(summary.errors) == 1
    assert summary.errors[0].startswith("alice:")
    stored_bob = await db.scalar(
        select(InstagramAccount)
        .where(InstagramAccount.id == bob_id)
        .execution_options(populate_existing=True)
    )
    assert stored_bob.access_token == "new-bob"
