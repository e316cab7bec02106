"""CLI tools for Hydrophone operations."""

import click

from hydrophone.core.async_utils import run_async
from hydrophone.core.config import settings
from hydrophone.db.enums import TemplateName
from hydrophone.db.session import SessionLocal
from hydrophone.services import confirmation_store as store
from hydrophone.services import mail_service
from hydrophone.services.account_service import SanityCheckFailed, send_test_email
from hydrophone.services.localizer import LocalizerError
from hydrophone.services.template_service import (
    RenderError,
    TemplateLoadError,
    TemplateRegistry,
    sample_content,
)


@click.group()
def cli():
    """Hydrophone CLI tools."""
    pass


@cli.command("check-templates")
@click.option("--path", "templates_path", default=None, help="Template directory (default TEMPLATE_PATH)")
@click.option("--lang", "languages", multiple=True, help="Language to check (repeatable; default all)")
def check_templates(templates_path: str | None, languages: tuple[str, ...]):
    """
    Load every template and render it in each language with sample values.

    Exits with status 1 when a template fails to load or render.

    Example:
        hydrophone check-templates --lang en --lang fr
    """
    try:
        registry = TemplateRegistry.build(templates_path or settings.TEMPLATE_PATH)
    except (TemplateLoadError, LocalizerError) as exc:
        click.echo(f"❌ {exc}")
        raise SystemExit(1)

    languages = languages or tuple(sorted(registry.localizer.languages))
    failures = 0
    for name in TemplateName:
        for lang in languages:
            try:
                registry.render(name.value, sample_content(), lang)
            except RenderError as exc:
                failures += 1
                click.echo(f"❌ {name.value} [{lang}]: {exc}")
    if failures:
        raise SystemExit(1)
    click.echo(f"✓ {len(registry.templates)} templates render in {', '.join(languages)}")


@cli.command("purge-user")
@click.argument("user_id")
def purge_user(user_id: str):
    """Delete every confirmation created by or addressed to USER_ID."""
    db = SessionLocal()
    try:
        deleted = store.remove_all_for_user(db, user_id)
    finally:
        db.close()
    click.echo(f"✓ Removed {deleted} confirmations for {user_id}")


@cli.command("send-test")
@click.argument("email")
def send_test(email: str):
    """Send the sanity check email to EMAIL through the configured provider."""
    mailer = mail_service.get_mailer()
    try:
        run_async(send_test_email(mailer, email))
    except SanityCheckFailed:
        click.echo(f"❌ Could not send the test email with provider {settings.MAIL_PROVIDER}")
        raise SystemExit(1)
    click.echo(f"✓ Test email sent to {email}")


def main():
    cli()


if __name__ == "__main__":
    main()
