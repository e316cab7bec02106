import pytest
from botocore.exceptions import ClientError

from hydrophone.services import mail_service
from hydrophone.services.mail_service import (
    STATUS_OK,
    NullMailer,
    SESMailer,
    SMTPMailer,
    build_message,
    encode_address,
    html_to_text,
)


class FakeSESClient:
    def __init__(self, error: Exception | None = None):
        self.requests: list[dict] = []
        self.error = error

    def send_email(self, **request):
        if self.error is not None:
            raise self.error
        self.requests.append(request)
        return {"MessageId": "msg-1"}


def test_html_to_text():
    text = html_to_text("<style>p{}</style><h1>Title</h1><p>Hello&nbsp;<b>you</b></p><br/>Bye")
    assert "Title" in text
    assert "Hello" in text and "you" in text
    assert "p{}" not in text
    assert "<" not in text


def test_encode_address_punycodes_domain():
    encoded = encode_address("jo@exämple.org")
    assert encoded.startswith("jo@xn--") and encoded.endswith(".org")
    assert encode_address("Team <jo@exämple.org>") == f"Team <{encoded}>"
    assert encode_address("not-an-address") == "not-an-address"


def test_build_message_has_text_and_html():
    message = build_message("noreply@x.org", ["a@x.org"], "Subject", "<p>Body</p>")
    parts = message.get_payload()
    assert [p.get_content_type() for p in parts] == ["text/plain", "text/html"]
    assert message["To"] == "a@x.org"


@pytest.mark.asyncio
async def test_messages_are_checked_before_sending():
    mailer = NullMailer()
    assert (await mailer.send([], "s", "b"))[0] == 400
    assert (await mailer.send(["a@x.org"], "", "b"))[0] == 400
    assert (await mailer.send(["a@x.org"], "s", ""))[0] == 400
    assert (await mailer.send(["a@x.org"], "s", "b"))[0] == STATUS_OK


@pytest.mark.asyncio
async def test_ses_sends_raw_message_with_tags():
    client = FakeSESClient()
    mailer = SESMailer(
        "Service <noreply@x.org>",
        configuration_set="set-1",
        default_tags={"env": "test"},
        client=client,
    )

    status, message_id = await mailer.send(
        ["bob@x.org"], "Hi", "<p>Hi</p>", tags={"type": "careteam invitation"}
    )

    assert (status, message_id) == (STATUS_OK, "msg-1")
    request = client.requests[0]
    assert request["Destination"] == {"ToAddresses": ["bob@x.org"]}
    assert request["ConfigurationSetName"] == "set-1"
    assert {"Name": "type", "Value": "careteam_invitation"} in request["EmailTags"]
    assert {"Name": "env", "Value": "test"} in request["EmailTags"]


@pytest.mark.asyncio
async def test_ses_client_error_is_reported():
    error = ClientError({"Error": {"Code": "MessageRejected", "Message": "no"}}, "SendEmail")
    mailer = SESMailer("noreply@x.org", client=FakeSESClient(error))

    status, message = await mailer.send(["bob@x.org"], "Hi", "<p>Hi</p>")
    assert status == 500
    assert "MessageRejected" in message


@pytest.mark.asyncio
async def test_smtp_without_host_is_not_configured():
    mailer = SMTPMailer(host="", sender="noreply@x.org")
    status, _ = await mailer.send(["bob@x.org"], "Hi", "<p>Hi</p>")
    assert status == 501


def test_get_mailer_follows_provider(monkeypatch):
    monkeypatch.setattr(mail_service.settings, "MAIL_PROVIDER", "null")
    assert mail_service.get_mailer().key == "null"

    monkeypatch.setattr(mail_service.settings, "MAIL_PROVIDER", "smtp")
    assert mail_service.get_mailer().key == "smtp"

    monkeypatch.setattr(mail_service.settings, "MAIL_PROVIDER", "pigeon")
    with pytest.raises(ValueError):
        mail_service.get_mailer()
