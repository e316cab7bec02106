import pytest

from hydrophone.db.enums import ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_store import ConfirmationFilter


def _record(db, creator_id="", user_id="", email="someone@x.org"):
    record = Confirmation.new(
        ConfirmationType.CARETEAM_INVITATION, TemplateName.CARETEAM_INVITATION, creator_id
    )
    record.user_id = user_id
    record.email = email
    return store.upsert(db, record)


@pytest.mark.asyncio
async def test_status(client):
    response = await client.get("/status")

    assert response.status_code == 200
    assert response.json() == {"code": 200, "reason": "OK"}


@pytest.mark.asyncio
async def test_account_deletion_drops_records(client, server_auth, db):
    _record(db, creator_id="GONE")
    _record(db, user_id="GONE")
    kept = _record(db, creator_id="STAY")

    response = await client.delete("/internal/users/GONE/confirmations", headers=server_auth)

    assert response.status_code == 200
    assert response.json() == {"deleted": 2}
    [remaining] = store.find_many(db, ConfirmationFilter())
    assert remaining.key == kept.key


@pytest.mark.asyncio
async def test_account_deletion_is_for_services(client, auth, db, directories):
    directories.identity.add_user("GONE", "gone@x.org")
    _record(db, creator_id="GONE")

    response = await client.delete("/internal/users/GONE/confirmations", headers=auth("GONE"))

    assert response.status_code == 403
    assert len(store.find_many(db, ConfirmationFilter())) == 1


@pytest.mark.asyncio
async def test_sanity_check(client, auth, mailer, directories):
    directories.identity.add_user("A", "alice@x.org")

    response = await client.post("/sanity_check/A", headers=auth("A"))

    assert response.status_code == 200
    assert mailer.sent[0].to == ["alice@x.org"]
    assert mailer.sent[0].subject == "Sanity Check Email"


@pytest.mark.asyncio
async def test_sanity_check_failure(client, auth, mailer, directories):
    directories.identity.add_user("A", "alice@x.org")
    mailer.status = 500

    response = await client.post("/sanity_check/A", headers=auth("A"))

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_preview(client):
    response = await client.get("/preview/password_reset", params={"lang": "fr"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "Réinitialisez votre mot de passe" in response.text


@pytest.mark.asyncio
async def test_preview_unknown_template(client):
    response = await client.get("/preview/nope")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_refresh_locales(client):
    response = await client.post("/refreshlocal")

    assert response.status_code == 200
    assert response.json()["reason"] == f"{len(TemplateName)} templates loaded"
