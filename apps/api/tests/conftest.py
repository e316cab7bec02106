"""
Test configuration and fixtures.

Provides:
- In-memory SQLite confirmation store (emptied after each test)
- In-process fakes of the directory services and a recording mailer
- Template registry built from the packaged templates
- HTTPX AsyncClient wired to the app through dependency overrides
"""
import os
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["PREVIEW_MODE"] = "true"
os.environ["SERVER_SECRET"] = "server-secret"
os.environ["MAIL_PROVIDER"] = "null"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.orm import Session

from hydrophone.core.config import DEFAULT_TEMPLATE_PATH
from hydrophone.core.deps import get_db, get_directory_bundle, get_mailer, get_templates
from hydrophone.core.errors import UpstreamUnavailable
from hydrophone.db.base import Base
from hydrophone.db.models import Confirmation
from hydrophone.db.session import SessionLocal, engine
from hydrophone.main import app
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory import ClinicPatientExists, Directories
from hydrophone.services.directory.models import (
    Clinic,
    Clinician,
    ClinicPatient,
    MrnSettings,
    Preferences,
    Profile,
    Team,
    TeamMember,
    TeamPatient,
    TokenData,
    User,
)
from hydrophone.services.mail_service import STATUS_OK
from hydrophone.services.template_service import TemplateRegistry

SERVER_TOKEN = "server-secret"


def auth_headers(user_id: str) -> dict[str, str]:
    """Session header of a user registered with ``FakeIdentity.add_user``."""
    return {"x-tidepool-session-token": f"token-{user_id}"}


SERVER_AUTH = {"x-tidepool-session-token": SERVER_TOKEN}


# =============================================================================
# Directory fakes
# =============================================================================

class FakeIdentity:
    def __init__(self):
        self.users: dict[str, User] = {}
        self.tokens: dict[str, TokenData] = {}
        self.updates: list[tuple[str, dict]] = []

    def add_user(
        self,
        userid: str,
        email: str | None,
        roles: list[str] | None = None,
        password_exists: bool = True,
        email_verified: bool = True,
    ) -> User:
        user = User(
            userid=userid,
            username=email or "",
            emails=[email] if email else [],
            roles=roles or [],
            email_verified=email_verified,
            password_exists=password_exists,
        )
        self.users[userid] = user
        role = (roles or ["caregiver"])[0]
        self.tokens[f"token-{userid}"] = TokenData(
            userid=userid, role=role, token=f"token-{userid}"
        )
        return user

    async def get_user(self, id_or_email: str, token: str | None = None) -> User | None:
        if not id_or_email:
            return None
        if id_or_email in self.users:
            return self.users[id_or_email]
        wanted = id_or_email.lower()
        for user in self.users.values():
            if wanted in (e.lower() for e in user.emails):
                return user
        return None

    async def authenticate(self, token: str) -> TokenData | None:
        if token == SERVER_TOKEN:
            return TokenData(is_server=True, token=token)
        return self.tokens.get(token)

    async def update_user(self, user_id: str, updates: dict, token: str | None = None) -> None:
        self.updates.append((user_id, updates))


class FakeProfile:
    def __init__(self):
        self.profiles: dict[str, Profile] = {}
        self.preferences: dict[str, Preferences] = {}
        self.updates: list[tuple[str, dict]] = []

    def set_profile(self, user_id: str, full_name: str, **patient) -> None:
        self.profiles[user_id] = Profile.model_validate(
            {"fullName": full_name, "patient": patient}
        )

    def set_language(self, user_id: str, language: str) -> None:
        self.preferences[user_id] = Preferences(display_language=language)

    async def get_profile(self, user_id: str) -> Profile | None:
        return self.profiles.get(user_id)

    async def get_preferences(self, user_id: str) -> Preferences | None:
        return self.preferences.get(user_id)

    async def update_profile(self, user_id: str, profile: dict) -> None:
        self.updates.append((user_id, profile))


class FakePermission:
    def __init__(self):
        self.groups: dict[tuple[str, str], dict] = {}
        self.granted: list[tuple[str, str, dict]] = []
        self.fail_grant = False

    async def user_in_group(self, user_id: str, group_id: str) -> dict:
        return dict(self.groups.get((user_id, group_id), {}))

    async def users_in_group(self, group_id: str) -> dict:
        return {u: p for (u, g), p in self.groups.items() if g == group_id}

    async def set_permissions(self, user_id: str, group_id: str, permissions: dict) -> dict:
        if self.fail_grant:
            raise UpstreamUnavailable("permissions are unavailable")
        self.granted.append((user_id, group_id, permissions))
        self.groups[(user_id, group_id)] = permissions
        return permissions

    async def is_custodian_or_root(self, caller_id: str, target_id: str) -> bool:
        permissions = self.groups.get((caller_id, target_id), {})
        return "custodian" in permissions or "root" in permissions


class FakeTeam:
    def __init__(self):
        self.teams: dict[str, Team] = {}
        self.patients: dict[str, list[TeamPatient]] = {}
        self.calls: list[tuple] = []
        self.fail_membership = False
        self.fail_update = False

    def add_team(self, team_id: str, admin_id: str, monitoring: bool = False, **members) -> Team:
        team = Team.model_validate(
            {
                "id": team_id,
                "name": "Central Hospital",
                "code": "123-456-789",
                "phone": "+33 4 00 00 00 00",
                "address": {"line1": "1 Main Street", "zip": "38000", "city": "Grenoble"},
                "remotePatientMonitoring": {"enabled": monitoring},
                "members": [
                    {"userId": admin_id, "teamId": team_id, "role": "admin", "invitationStatus": "accepted"},
                    *(
                        {"userId": uid, "teamId": team_id, "role": role, "invitationStatus": "accepted"}
                        for uid, role in members.items()
                    ),
                ],
            }
        )
        self.teams[team_id] = team
        return team

    def add_patient_to_team(self, team_id: str, user_id: str, status: str = "accepted") -> None:
        self.patients.setdefault(team_id, []).append(
            TeamPatient(user_id=user_id, team_id=team_id, invitation_status=status)
        )

    async def get_team(self, team_id: str, token: str | None = None) -> Team | None:
        return self.teams.get(team_id)

    async def get_team_patients(self, team_id: str, token: str | None = None) -> list[TeamPatient]:
        return list(self.patients.get(team_id, []))

    async def get_team_patient(
        self, team_id: str, user_id: str, token: str | None = None
    ) -> TeamPatient | None:
        return next((p for p in self.patients.get(team_id, []) if p.user_id == user_id), None)

    async def add_team_member(self, member: TeamMember, token: str | None = None) -> None:
        if self.fail_membership:
            raise UpstreamUnavailable("team is unavailable")
        self.calls.append(("add_member", member))

    async def update_team_member(self, member: TeamMember, token: str | None = None) -> None:
        if self.fail_update:
            raise UpstreamUnavailable("team is unavailable")
        self.calls.append(("update_member", member))

    async def remove_team_member(self, team_id: str, user_id: str, token: str | None = None) -> None:
        self.calls.append(("remove_member", team_id, user_id))

    async def add_patient(self, patient: TeamPatient, token: str | None = None) -> None:
        self.calls.append(("add_patient", patient))

    async def update_patient(self, patient: TeamPatient, token: str | None = None) -> None:
        self.calls.append(("update_patient", patient))

    async def update_patient_monitoring(
        self, team_id: str, user_id: str, monitoring: dict, token: str | None = None
    ) -> None:
        self.calls.append(("monitoring", team_id, user_id, monitoring))


class FakeClinic:
    def __init__(self):
        self.clinics: dict[str, Clinic] = {}
        self.clinicians: dict[tuple[str, str], Clinician] = {}
        self.invited: dict[tuple[str, str], Clinician] = {}
        self.patients: dict[tuple[str, str], ClinicPatient] = {}
        self.mrn_required: set[str] = set()
        self.fail_associate = False

    def add_clinic(self, clinic_id: str, name: str = "Diabetes Center", **extra) -> Clinic:
        clinic = Clinic.model_validate({"id": clinic_id, "name": name, **extra})
        self.clinics[clinic_id] = clinic
        return clinic

    def add_clinician(self, clinic_id: str, user_id: str, email: str, admin: bool = False) -> None:
        roles = ["CLINIC_ADMIN"] if admin else ["CLINIC_MEMBER"]
        self.clinicians[(clinic_id, user_id)] = Clinician(id=user_id, email=email, roles=roles)

    async def list_clinics(self, share_code: str | None = None, limit: int = 1) -> list[Clinic]:
        return [c for c in self.clinics.values() if c.share_code == share_code][:limit]

    async def get_clinic(self, clinic_id: str) -> Clinic | None:
        return self.clinics.get(clinic_id)

    async def get_mrn_settings(self, clinic_id: str) -> MrnSettings:
        return MrnSettings(required=clinic_id in self.mrn_required)

    async def list_clinicians(
        self, clinic_id: str, role: str | None = None, limit: int = 100
    ) -> list[Clinician]:
        return [
            c for (cid, _), c in self.clinicians.items()
            if cid == clinic_id and (role is None or role in c.roles)
        ][:limit]

    async def get_clinician(self, clinic_id: str, user_id: str) -> Clinician | None:
        return self.clinicians.get((clinic_id, user_id))

    async def create_clinician(self, clinic_id: str, clinician: Clinician) -> Clinician:
        self.invited[(clinic_id, clinician.invite_id)] = clinician
        return clinician

    async def get_invited_clinician(self, clinic_id: str, invite_id: str) -> Clinician | None:
        return self.invited.get((clinic_id, invite_id))

    async def delete_invited_clinician(self, clinic_id: str, invite_id: str) -> None:
        self.invited.pop((clinic_id, invite_id), None)

    async def associate_clinician_to_user(
        self, clinic_id: str, invite_id: str, user_id: str
    ) -> Clinician:
        if self.fail_associate:
            raise UpstreamUnavailable("clinic is unavailable")
        invited = self.invited.pop((clinic_id, invite_id))
        clinician = Clinician(id=user_id, email=invited.email, roles=invited.roles)
        self.clinicians[(clinic_id, user_id)] = clinician
        return clinician

    async def get_patient(self, clinic_id: str, patient_id: str) -> ClinicPatient | None:
        return self.patients.get((clinic_id, patient_id))

    async def create_patient_from_user(
        self,
        clinic_id: str,
        patient_id: str,
        permissions: dict,
        mrn: str | None = None,
        birth_date: str | None = None,
        full_name: str | None = None,
    ) -> ClinicPatient:
        if (clinic_id, patient_id) in self.patients:
            raise ClinicPatientExists(patient_id)
        patient = ClinicPatient(id=patient_id, full_name=full_name or "", permissions=permissions)
        self.patients[(clinic_id, patient_id)] = patient
        return patient


class FakeMedicalData:
    def __init__(self):
        self.imei = "123456789012345"

    async def get_device_imei(self, token: str) -> str:
        return self.imei


# =============================================================================
# Mail
# =============================================================================

@dataclass
class SentMail:
    to: list[str]
    subject: str
    body: str
    tags: dict[str, str] | None = None


@dataclass
class RecordingMailer:
    """Keeps every message instead of sending it."""

    key: str = "recording"
    status: int = STATUS_OK
    sent: list[SentMail] = field(default_factory=list)

    async def send(self, to, subject, body_html, tags=None):
        if self.status != STATUS_OK:
            return self.status, "refused"
        self.sent.append(SentMail(list(to), subject, body_html, tags))
        return STATUS_OK, "OK"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def schema() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Session on the shared in-memory database; all records removed afterwards."""
    session = SessionLocal()
    yield session
    session.close()
    with engine.begin() as connection:
        connection.execute(delete(Confirmation.__table__))


@pytest.fixture(scope="session")
def templates() -> TemplateRegistry:
    return TemplateRegistry.build(DEFAULT_TEMPLATE_PATH)


@pytest.fixture(scope="function")
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture(scope="function")
def directories() -> Directories:
    return Directories(
        identity=FakeIdentity(),
        profile=FakeProfile(),
        permission=FakePermission(),
        team=FakeTeam(),
        clinic=FakeClinic(),
        medical_data=FakeMedicalData(),
    )


@pytest.fixture(scope="function")
def ctx(
    db: Session,
    directories: Directories,
    mailer: RecordingMailer,
    templates: TemplateRegistry,
) -> EngineContext:
    return EngineContext(db=db, directories=directories, mailer=mailer, templates=templates)


@pytest.fixture(scope="function")
async def client(
    db: Session,
    directories: Directories,
    mailer: RecordingMailer,
    templates: TemplateRegistry,
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app with fake collaborators."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_directory_bundle] = lambda: directories
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_templates] = lambda: templates

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """``auth("A")`` gives the session header of user ``A``."""
    return auth_headers


@pytest.fixture
def server_auth() -> dict[str, str]:
    return dict(SERVER_AUTH)
