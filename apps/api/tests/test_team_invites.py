"""Medical team invitations, roles, removal and remote monitoring."""
from datetime import timedelta

import pytest

from hydrophone.db.enums import ConfirmationStatus, ConfirmationType
from hydrophone.db.models import utcnow
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_store import ConfirmationFilter

MONITORING = {"monitoringEnd": "2030-01-01T00:00:00Z", "referringDoctor": "Dr Who"}


@pytest.fixture
def team(directories):
    directories.identity.add_user("ADM", "admin@x.org", roles=["hcp"])
    directories.identity.add_user("DOC", "doc@x.org", roles=["hcp"])
    directories.identity.add_user("PAT", "pat@x.org", roles=["patient"])
    directories.profile.set_profile("ADM", "Dr Admin")
    return directories.team.add_team("T1", "ADM")


def _calls(directories, name):
    return [call for call in directories.team.calls if call[0] == name]


async def _invite(client, auth, email="doc@x.org", role="member", caller="ADM"):
    return await client.post(
        "/send/team/invite",
        json={"teamId": "T1", "email": email, "role": role},
        headers=auth(caller),
    )


# =============================================================================
# Invitations
# =============================================================================

@pytest.mark.asyncio
async def test_admin_invites_member(client, auth, db, mailer, directories, team):
    response = await _invite(client, auth)

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "medicalteam_invitation"
    assert data["team"] == {"id": "T1", "name": "Central Hospital"}
    assert data["role"] == "member"
    assert data["userId"] == "DOC"

    [(_, member)] = _calls(directories, "add_member")
    assert member.user_id == "DOC"
    assert member.invitation_status == "pending"
    assert "Central Hospital" in mailer.sent[0].body


@pytest.mark.asyncio
async def test_non_admin_cannot_invite_members(client, auth, directories, team):
    response = await _invite(client, auth, email="new@x.org", caller="DOC")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_patient_cannot_join_as_member(client, auth, team):
    response = await _invite(client, auth, email="pat@x.org")
    assert response.status_code == 405


@pytest.mark.asyncio
async def test_clinician_cannot_join_as_patient(client, auth, team):
    response = await _invite(client, auth, email="doc@x.org", role="patient")
    assert response.status_code == 405


@pytest.mark.asyncio
async def test_patient_invite(client, auth, directories, team):
    response = await _invite(client, auth, email="pat@x.org", role="patient")

    assert response.status_code == 200
    assert response.json()["type"] == "medicalteam_patient_invitation"
    [(_, patient)] = _calls(directories, "add_patient")
    assert patient.user_id == "PAT"


@pytest.mark.asyncio
async def test_accepted_member_is_refused(client, auth, directories, team):
    directories.team.add_team("T1", "ADM", DOC="member")

    response = await _invite(client, auth)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_duplicate_team_invite(client, auth, team):
    await _invite(client, auth)

    response = await _invite(client, auth)

    assert response.status_code == 409
    assert "existing invite" in response.json()["reason"]


@pytest.mark.asyncio
async def test_expired_team_invite_does_not_block_a_new_one(client, auth, db, team):
    old_key = (await _invite(client, auth)).json()["key"]
    record = store.find_one(db, ConfirmationFilter(key=old_key))
    record.created = utcnow() - timedelta(days=8)
    store.upsert(db, record)

    response = await _invite(client, auth)

    assert response.status_code == 200
    assert response.json()["key"] != old_key


@pytest.mark.asyncio
async def test_membership_failure_cancels_the_invite(client, auth, db, mailer, directories, team):
    directories.team.fail_membership = True

    response = await _invite(client, auth)

    assert response.status_code == 500
    [record] = store.find_many(db, ConfirmationFilter(team_id="T1"))
    assert record.status == ConfirmationStatus.CANCELED.value
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_unknown_team(client, auth, team):
    response = await client.post(
        "/send/team/invite",
        json={"teamId": "nope", "email": "doc@x.org"},
        headers=auth("ADM"),
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_invitee_accepts(client, auth, directories, team):
    key = (await _invite(client, auth)).json()["key"]

    response = await client.put("/accept/team/invite", json={"key": key}, headers=auth("DOC"))

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    [(_, member)] = _calls(directories, "update_member")
    assert member.invitation_status == "accepted"


@pytest.mark.asyncio
async def test_accept_can_be_retried_after_a_membership_failure(client, auth, db, directories, team):
    key = (await _invite(client, auth)).json()["key"]
    directories.team.fail_update = True

    failed = await client.put("/accept/team/invite", json={"key": key}, headers=auth("DOC"))

    assert failed.status_code == 500
    db.expire_all()
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "pending"

    directories.team.fail_update = False
    response = await client.put("/accept/team/invite", json={"key": key}, headers=auth("DOC"))

    assert response.status_code == 200
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_caregiver_cannot_accept(client, auth, directories, team):
    directories.identity.add_user("CG", "cg@x.org", roles=["caregiver"])
    key = (await _invite(client, auth, email="cg@x.org")).json()["key"]

    response = await client.put("/accept/team/invite", json={"key": key}, headers=auth("CG"))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_accept_of_someone_elses_invite(client, auth, directories, team):
    directories.identity.add_user("DOC2", "doc2@x.org", roles=["hcp"])
    key = (await _invite(client, auth)).json()["key"]

    response = await client.put("/accept/team/invite", json={"key": key}, headers=auth("DOC2"))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_dismiss_then_dismiss_again(client, auth, directories, team):
    key = (await _invite(client, auth)).json()["key"]

    first = await client.put("/dismiss/team/invite/T1", json={"key": key}, headers=auth("DOC"))
    second = await client.put("/dismiss/team/invite/T1", json={"key": key}, headers=auth("DOC"))

    assert first.status_code == 200
    assert first.json()["status"] == "declined"
    assert second.status_code == 304
    [(_, member)] = _calls(directories, "update_member")
    assert member.invitation_status == "rejected"


@pytest.mark.asyncio
async def test_admin_can_dismiss_on_behalf(client, auth, team):
    key = (await _invite(client, auth)).json()["key"]

    response = await client.put("/dismiss/team/invite/T1", json={"key": key}, headers=auth("ADM"))

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_admin_lists_pending_invites(client, auth, team):
    await _invite(client, auth)
    await _invite(client, auth, email="pat@x.org", role="patient")

    response = await client.get("/teams/T1/invites", headers=auth("ADM"))

    assert response.status_code == 200
    assert sorted(i["email"] for i in response.json()) == ["doc@x.org", "pat@x.org"]
    member = await client.get("/teams/T1/invites", headers=auth("DOC"))
    assert member.status_code == 401


# =============================================================================
# Roles and removal
# =============================================================================

@pytest.mark.asyncio
async def test_promotion_to_admin_sends_notice(client, auth, db, mailer, directories):
    directories.identity.add_user("ADM", "admin@x.org", roles=["hcp"])
    directories.identity.add_user("DOC", "doc@x.org", roles=["hcp"])
    directories.team.add_team("T1", "ADM", DOC="member")

    response = await client.put(
        "/send/team/role/DOC",
        json={"teamId": "T1", "email": "doc@x.org", "role": "admin"},
        headers=auth("ADM"),
    )

    assert response.status_code == 200
    assert response.json()["type"] == "medicalteam_do_admin"
    [(_, member)] = _calls(directories, "update_member")
    assert member.role == "admin"
    assert len(mailer.sent) == 1


@pytest.mark.asyncio
async def test_demotion_is_silent(client, auth, mailer, directories):
    directories.identity.add_user("ADM", "admin@x.org", roles=["hcp"])
    directories.team.add_team("T1", "ADM", DOC="admin")

    response = await client.put(
        "/send/team/role/DOC",
        json={"teamId": "T1", "email": "doc@x.org", "role": "member"},
        headers=auth("ADM"),
    )

    assert response.status_code == 200
    assert response.json() == {"code": 200, "reason": "OK"}
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_role_change_needs_team_admin(client, auth, directories):
    directories.identity.add_user("DOC", "doc@x.org", roles=["hcp"])
    directories.team.add_team("T1", "ADM", DOC="member", OTHER="member")

    response = await client.put(
        "/send/team/role/OTHER",
        json={"teamId": "T1", "email": "other@x.org", "role": "admin"},
        headers=auth("DOC"),
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_same_role_is_a_conflict(client, auth, directories):
    directories.identity.add_user("ADM", "admin@x.org", roles=["hcp"])
    directories.team.add_team("T1", "ADM", DOC="member")

    response = await client.put(
        "/send/team/role/DOC",
        json={"teamId": "T1", "email": "doc@x.org", "role": "member"},
        headers=auth("ADM"),
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_admin_removes_member(client, auth, db, mailer, directories):
    directories.identity.add_user("ADM", "admin@x.org", roles=["hcp"])
    directories.identity.add_user("DOC", "doc@x.org", roles=["hcp"])
    directories.team.add_team("T1", "ADM", DOC="member")

    response = await client.delete("/send/team/leave/T1/DOC", headers=auth("ADM"))

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "medicalteam_remove"
    assert data["email"] == "doc@x.org"
    assert ("remove_member", "T1", "DOC") in directories.team.calls
    assert len(mailer.sent) == 1


@pytest.mark.asyncio
async def test_member_cannot_remove_others(client, auth, directories):
    directories.identity.add_user("DOC", "doc@x.org", roles=["hcp"])
    directories.team.add_team("T1", "ADM", DOC="member", OTHER="member")

    response = await client.delete(
        "/send/team/leave/T1/OTHER", params={"email": "other@x.org"}, headers=auth("DOC")
    )

    assert response.status_code == 401
    assert _calls(directories, "remove_member") == []


# =============================================================================
# Remote monitoring
# =============================================================================

@pytest.fixture
def monitoring_team(directories):
    directories.identity.add_user("ADM", "admin@x.org", roles=["hcp"])
    directories.identity.add_user("PAT", "pat@x.org", roles=["patient"])
    directories.team.add_team("T1", "ADM", monitoring=True)
    directories.team.add_patient_to_team("T1", "PAT")


async def _invite_monitoring(client, auth):
    return await client.post(
        "/send/team/monitoring/T1/PAT", json=MONITORING, headers=auth("ADM")
    )


@pytest.mark.asyncio
async def test_monitoring_invite(client, auth, db, mailer, directories, monitoring_team):
    response = await _invite_monitoring(client, auth)

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "medicalteam_monitoring_invitation"
    assert data["userId"] == "PAT"
    assert data["email"] == "pat@x.org"
    assert len(mailer.sent) == 1
    assert directories.profile.updates == [("PAT", {"patient": {"referringDoctor": "Dr Who"}})]
    [monitoring] = _calls(directories, "monitoring")
    assert monitoring[3]["status"] == "pending"


@pytest.mark.asyncio
async def test_monitoring_needs_enabled_team(client, auth, directories, monitoring_team):
    directories.team.add_team("T1", "ADM", monitoring=False)

    response = await _invite_monitoring(client, auth)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_monitoring_needs_accepted_patient(client, auth, directories, monitoring_team):
    directories.team.patients["T1"] = []
    directories.team.add_patient_to_team("T1", "PAT", status="pending")

    response = await _invite_monitoring(client, auth)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_patient_accepts_monitoring(client, auth, directories, monitoring_team):
    await _invite_monitoring(client, auth)

    response = await client.put("/accept/team/monitoring/T1/PAT", headers=auth("PAT"))

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    accepted = _calls(directories, "monitoring")[-1]
    assert accepted[3]["status"] == "accepted"
    _, profile = directories.profile.updates[-1]
    assert profile["patient"]["monitoring"]["isAccepted"] is True


@pytest.mark.asyncio
async def test_expired_monitoring_invite_stays_pending(client, auth, db, monitoring_team):
    key = (await _invite_monitoring(client, auth)).json()["key"]
    record = store.find_one(db, ConfirmationFilter(key=key))
    record.created = utcnow() - timedelta(days=31)
    store.upsert(db, record)

    response = await client.put("/accept/team/monitoring/T1/PAT", headers=auth("PAT"))

    assert response.status_code == 409
    assert "expired" in response.json()["reason"]
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "pending"


@pytest.mark.asyncio
async def test_old_completed_monitoring_invite_is_refused(client, auth, db, monitoring_team):
    key = (await _invite_monitoring(client, auth)).json()["key"]
    await client.put("/accept/team/monitoring/T1/PAT", headers=auth("PAT"))
    record = store.find_one(db, ConfirmationFilter(key=key))
    record.created = utcnow() - timedelta(days=31)
    store.upsert(db, record)

    response = await client.put("/accept/team/monitoring/T1/PAT", headers=auth("PAT"))

    assert response.status_code == 403
    assert store.find_one(db, ConfirmationFilter(key=key)).status == "completed"


@pytest.mark.asyncio
async def test_patient_declines_monitoring(client, auth, monitoring_team):
    await _invite_monitoring(client, auth)

    response = await client.put("/dismiss/team/monitoring/T1/PAT", headers=auth("PAT"))

    assert response.status_code == 200
    assert response.json()["status"] == "declined"


@pytest.mark.asyncio
async def test_admin_cancels_monitoring(client, auth, monitoring_team):
    await _invite_monitoring(client, auth)

    response = await client.put("/dismiss/team/monitoring/T1/PAT", headers=auth("ADM"))

    assert response.status_code == 200
    assert response.json()["status"] == "canceled"


def test_monitoring_type_value():
    assert (
        ConfirmationType.MEDICALTEAM_MONITORING_INVITATION.value
        == "medicalteam_monitoring_invitation"
    )
