"""Clients for the services that own users, permissions, teams and clinics."""

from __future__ import annotations

from dataclasses import dataclass, field

from hydrophone.services.directory.base import DirectoryClient, DirectoryError
from hydrophone.services.directory.clinic import ClinicClient, ClinicPatientExists
from hydrophone.services.directory.identity import IdentityClient
from hydrophone.services.directory.medical_data import MedicalDataClient
from hydrophone.services.directory.permission import PermissionClient
from hydrophone.services.directory.profile import ProfileClient
from hydrophone.services.directory.team import TeamClient


@dataclass
class Directories:
    """Bundle of directory clients handed to the engine services."""

    identity: IdentityClient = field(default_factory=IdentityClient)
    profile: ProfileClient = field(default_factory=ProfileClient)
    permission: PermissionClient = field(default_factory=PermissionClient)
    team: TeamClient = field(default_factory=TeamClient)
    clinic: ClinicClient = field(default_factory=ClinicClient)
    medical_data: MedicalDataClient = field(default_factory=MedicalDataClient)


_directories: Directories | None = None


def get_directories() -> Directories:
    global _directories
    if _directories is None:
        _directories = Directories()
    return _directories


__all__ = [
    "ClinicClient",
    "ClinicPatientExists",
    "Directories",
    "DirectoryClient",
    "DirectoryError",
    "IdentityClient",
    "MedicalDataClient",
    "PermissionClient",
    "ProfileClient",
    "TeamClient",
    "get_directories",
]
