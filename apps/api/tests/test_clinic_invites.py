"""Patient to clinic invites and clinician invites."""
from datetime import timedelta

import pytest

from hydrophone.db.models import utcnow
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_store import ConfirmationFilter

PERMISSIONS = {"view": {}, "upload": {}}


@pytest.fixture
def clinic(directories):
    directories.identity.add_user("P", "pat@x.org", roles=["patient"])
    directories.identity.add_user("ADM", "admin@clinic.org", roles=["clinic"])
    directories.identity.add_user("MEM", "member@clinic.org", roles=["clinic"])
    directories.profile.set_profile("P", "Paula Patient")
    directories.clinic.add_clinic("C1", shareCode="ABCD-EFGH")
    directories.clinic.add_clinician("C1", "ADM", "admin@clinic.org", admin=True)
    directories.clinic.add_clinician("C1", "MEM", "member@clinic.org")


async def _share(client, auth, share_code="ABCD-EFGH"):
    return await client.post(
        "/send/invite/P/clinic",
        json={"shareCode": share_code, "permissions": PERMISSIONS},
        headers=auth("P"),
    )


# =============================================================================
# Patient invites
# =============================================================================

@pytest.mark.asyncio
async def test_share_code_invite_mails_clinic_admins(client, auth, db, mailer, clinic):
    response = await _share(client, auth)

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "patient_clinic_invitation"
    assert data["clinicId"] == "C1"
    assert [mail.to for mail in mailer.sent] == [["admin@clinic.org"]]
    assert "Paula Patient" in mailer.sent[0].subject
    assert "Diabetes Center" in mailer.sent[0].subject


@pytest.mark.asyncio
async def test_unknown_share_code(client, auth, clinic):
    response = await _share(client, auth, share_code="ZZZZ")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_clinic_invite(client, auth, mailer, clinic):
    await _share(client, auth)

    response = await _share(client, auth)

    assert response.status_code == 409
    assert len(mailer.sent) == 1


@pytest.mark.asyncio
async def test_existing_patient_is_refused(client, auth, directories, clinic):
    await directories.clinic.create_patient_from_user("C1", "P", PERMISSIONS)

    response = await _share(client, auth)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_pending_invite_is_reported_before_membership(client, auth, directories, clinic):
    await _share(client, auth)
    await directories.clinic.create_patient_from_user("C1", "P", PERMISSIONS)

    response = await _share(client, auth)

    assert response.status_code == 409
    assert "existing invite" in response.json()["reason"]


@pytest.mark.asyncio
async def test_expired_clinic_invite_does_not_block_a_new_one(client, auth, db, mailer, clinic):
    old_key = (await _share(client, auth)).json()["key"]
    record = store.find_one(db, ConfirmationFilter(key=old_key))
    record.created = utcnow() - timedelta(days=8)
    store.upsert(db, record)

    response = await _share(client, auth)

    assert response.status_code == 200
    assert response.json()["key"] != old_key
    assert len(mailer.sent) == 2


@pytest.mark.asyncio
async def test_suppressed_notifications(client, auth, db, mailer, directories, clinic):
    directories.clinic.add_clinic(
        "C1", shareCode="ABCD-EFGH", suppressedNotifications={"patientClinicInvitation": True}
    )

    response = await _share(client, auth)

    assert response.status_code == 200
    assert mailer.sent == []
    assert store.find_one(db, ConfirmationFilter(clinic_id="C1")) is not None


@pytest.mark.asyncio
async def test_invite_by_clinic_id(client, auth, mailer, clinic):
    response = await client.post(
        "/clinics/C1/invite/patient", json={"permissions": PERMISSIONS}, headers=auth("P")
    )

    assert response.status_code == 200
    assert response.json()["creatorId"] == "P"


@pytest.mark.asyncio
async def test_clinic_lists_pending_invites(client, auth, clinic):
    await _share(client, auth)

    response = await client.get("/clinics/C1/invites/patients", headers=auth("MEM"))

    assert response.status_code == 200
    assert [i["creatorId"] for i in response.json()] == ["P"]
    outsider = await client.get("/clinics/C1/invites/patients", headers=auth("P"))
    assert outsider.status_code == 401


@pytest.mark.asyncio
async def test_member_accepts_patient_invite(client, auth, db, directories, clinic):
    key = (await _share(client, auth)).json()["key"]

    response = await client.put(
        f"/clinics/C1/invites/patients/{key}", json={"mrn": "123"}, headers=auth("MEM")
    )

    assert response.status_code == 200
    assert response.json()["id"] == "P"
    assert directories.clinic.patients[("C1", "P")].permissions == PERMISSIONS
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "completed"


@pytest.mark.asyncio
async def test_mrn_required(client, auth, db, directories, clinic):
    directories.clinic.mrn_required.add("C1")
    key = (await _share(client, auth)).json()["key"]

    response = await client.put(f"/clinics/C1/invites/patients/{key}", headers=auth("MEM"))

    assert response.status_code == 400
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "pending"


@pytest.mark.asyncio
async def test_inviter_cancels(client, auth, clinic):
    key = (await _share(client, auth)).json()["key"]

    response = await client.delete(f"/clinics/C1/invites/patients/{key}", headers=auth("P"))

    assert response.status_code == 200
    assert response.json()["status"] == "canceled"


@pytest.mark.asyncio
async def test_member_dismisses_and_repeat_is_harmless(client, auth, clinic):
    key = (await _share(client, auth)).json()["key"]

    first = await client.delete(f"/clinics/C1/invites/patients/{key}", headers=auth("MEM"))
    second = await client.delete(f"/clinics/C1/invites/patients/{key}", headers=auth("MEM"))

    assert first.json()["status"] == "declined"
    assert second.status_code == 200
    assert second.json()["status"] == "declined"


@pytest.mark.asyncio
async def test_dismiss_by_outsider(client, auth, directories, clinic):
    directories.identity.add_user("X", "x@x.org")
    key = (await _share(client, auth)).json()["key"]

    response = await client.delete(f"/clinics/C1/invites/patients/{key}", headers=auth("X"))

    assert response.status_code == 401


# =============================================================================
# Clinician invites
# =============================================================================

async def _invite_clinician(client, auth, email="new@clinic.org"):
    return await client.post(
        "/clinics/C1/invite/clinician",
        json={"email": email, "roles": ["CLINIC_MEMBER"]},
        headers=auth("ADM"),
    )


@pytest.mark.asyncio
async def test_admin_invites_clinician(client, auth, mailer, directories, clinic):
    response = await _invite_clinician(client, auth)

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "clinician_invitation"
    assert data["creator"]["clinicName"] == "Diabetes Center"
    assert ("C1", data["key"]) in directories.clinic.invited
    assert "/signup/clinician" in mailer.sent[0].body


@pytest.mark.asyncio
async def test_member_cannot_invite_clinician(client, auth, clinic):
    response = await client.post(
        "/clinics/C1/invite/clinician", json={"email": "new@clinic.org"}, headers=auth("MEM")
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invitee_lists_and_accepts(client, auth, db, directories, clinic):
    key = (await _invite_clinician(client, auth)).json()["key"]
    directories.identity.add_user("NEW", "new@clinic.org", roles=["clinic"])

    listed = await client.get("/clinicians/NEW/invites", headers=auth("NEW"))
    assert listed.status_code == 200
    [invite] = listed.json()
    assert invite["key"] == key
    assert invite["restrictions"]["canAccept"] is True

    response = await client.put(f"/clinicians/NEW/invites/{key}", headers=auth("NEW"))

    assert response.status_code == 200
    assert ("C1", "NEW") in directories.clinic.clinicians
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "completed"


@pytest.mark.asyncio
async def test_clinician_accept_can_be_retried_after_a_clinic_failure(client, auth, db, directories, clinic):
    key = (await _invite_clinician(client, auth)).json()["key"]
    directories.identity.add_user("NEW", "new@clinic.org", roles=["clinic"])
    await client.get("/clinicians/NEW/invites", headers=auth("NEW"))
    directories.clinic.fail_associate = True

    failed = await client.put(f"/clinicians/NEW/invites/{key}", headers=auth("NEW"))

    assert failed.status_code == 500
    db.expire_all()
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "pending"

    directories.clinic.fail_associate = False
    response = await client.put(f"/clinicians/NEW/invites/{key}", headers=auth("NEW"))

    assert response.status_code == 200
    assert ("C1", "NEW") in directories.clinic.clinicians


@pytest.mark.asyncio
async def test_expired_clinician_invite_cannot_be_accepted(client, auth, db, directories, clinic):
    directories.identity.add_user("NEW", "new@clinic.org", roles=["clinic"])
    key = (await _invite_clinician(client, auth)).json()["key"]
    record = store.find_one(db, ConfirmationFilter(key=key))
    record.created = utcnow() - timedelta(days=8)
    store.upsert(db, record)

    listed = await client.get("/clinicians/NEW/invites", headers=auth("NEW"))
    assert listed.json()[0]["restrictions"]["canAccept"] is False

    response = await client.put(f"/clinicians/NEW/invites/{key}", headers=auth("NEW"))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_no_invites(client, auth, clinic):
    response = await client.get("/clinicians/MEM/invites", headers=auth("MEM"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_other_users_invites_are_private(client, auth, clinic):
    response = await client.get("/clinicians/NEW/invites", headers=auth("MEM"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invitee_dismisses(client, auth, db, directories, clinic):
    directories.identity.add_user("NEW", "new@clinic.org", roles=["clinic"])
    key = (await _invite_clinician(client, auth)).json()["key"]

    response = await client.delete(f"/clinicians/NEW/invites/{key}", headers=auth("NEW"))

    assert response.status_code == 200
    assert response.json()["status"] == "declined"
    assert ("C1", key) not in directories.clinic.invited


@pytest.mark.asyncio
async def test_admin_resends_gets_and_cancels(client, auth, mailer, directories, clinic):
    key = (await _invite_clinician(client, auth)).json()["key"]

    resent = await client.patch(f"/clinics/C1/invites/{key}/clinician", headers=auth("ADM"))
    assert resent.status_code == 200
    assert resent.json()["key"] == key
    assert len(mailer.sent) == 2

    fetched = await client.get(f"/clinics/C1/invites/{key}/clinician", headers=auth("ADM"))
    assert fetched.json()["email"] == "new@clinic.org"

    canceled = await client.delete(f"/clinics/C1/invites/{key}/clinician", headers=auth("ADM"))
    assert canceled.json()["status"] == "canceled"
    assert ("C1", key) not in directories.clinic.invited


@pytest.mark.asyncio
async def test_cancel_without_record_still_removes_directory_entry(client, auth, directories, clinic):
    await directories.clinic.create_clinician(
        "C1", directories.clinic.clinicians[("C1", "MEM")].model_copy(update={"invite_id": "orphan"})
    )

    response = await client.delete("/clinics/C1/invites/orphan/clinician", headers=auth("ADM"))

    assert response.status_code == 200
    assert response.json() == {"code": 200, "reason": "OK"}
    assert ("C1", "orphan") not in directories.clinic.invited
