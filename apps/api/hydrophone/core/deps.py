"""FastAPI dependencies for authentication, collaborators and database access."""

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from hydrophone.core.errors import Unauthorized
from hydrophone.db.session import SessionLocal
from hydrophone.services import mail_service, template_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory import Directories, get_directories
from hydrophone.services.directory.base import SESSION_TOKEN_HEADER
from hydrophone.services.directory.models import TokenData
from hydrophone.services.mail_service import Mailer
from hydrophone.services.template_service import TemplateRegistry


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_directory_bundle() -> Directories:
    return get_directories()


_mailer: Mailer | None = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        _mailer = mail_service.get_mailer()
    return _mailer


def get_templates() -> TemplateRegistry:
    return template_service.get_registry()


def _extract_token(request: Request) -> str:
    token = request.headers.get(SESSION_TOKEN_HEADER, "").strip()
    if token:
        return token
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer":
        return credentials.strip()
    return ""


async def get_token(
    request: Request,
    directories: Directories = Depends(get_directory_bundle),
) -> TokenData:
    """
    Authenticate the caller.

    Accepts the legacy session token header or an ``Authorization: Bearer``
    header and delegates validation to the identity directory.

    Raises:
        Unauthorized: token missing or rejected
    """
    token = _extract_token(request)
    if not token:
        raise Unauthorized("Not authenticated")
    token_data = await directories.identity.authenticate(token)
    if token_data is None:
        raise Unauthorized("Invalid session token")
    return token_data


def get_engine(
    request: Request,
    db: Session = Depends(get_db),
    directories: Directories = Depends(get_directory_bundle),
    mailer: Mailer = Depends(get_mailer),
    templates: TemplateRegistry = Depends(get_templates),
) -> EngineContext:
    """Collaborators of the confirmation engine for the current request."""
    return EngineContext(
        db=db,
        directories=directories,
        mailer=mailer,
        templates=templates,
        headers=request.headers,
    )
