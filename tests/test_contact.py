import pytest

from siteapi.integrations import NullMailer

from fakes import RecordingMailer

MESSAGE = {"name": "Pat", "email": "pat@example.com", "message": "Hello <b>there</b>"}


def send(client, body=None, ip="198.51.100.50"):
    return client.post_from("/api/contact", ip, json=body if body is not None else MESSAGE)


def test_message_is_relayed_to_the_owner(client, mailer):
    response = send(client)

    assert response.status_code == 200
    message = mailer.messages[0]
    assert message["to"] == "owner@example.com"
    assert message["reply_to"] == "pat@example.com"
    assert "Hello &lt;b&gt;there&lt;/b&gt;" in message["html_body"]
    assert "<b>there</b>" not in message["html_body"]


@pytest.mark.parametrize("override", [
    {"name": ""},
    {"email": "nope"},
    {"message": ""},
    {"message": "x" * 5001},
])
def test_validation(client, override):
    assert send(client, dict(MESSAGE, **override)).status_code == 400


def test_mail_failure_is_a_bad_gateway(client, services):
    services.mailer = RecordingMailer(fail=True)

    assert send(client).status_code == 502


def test_unconfigured_mailer(client, services):
    services.mailer = NullMailer()

    assert send(client).status_code == 503


def test_contact_is_admission_checked(client):
    statuses = [send(client, ip="198.51.100.51").status_code for _ in range(6)]

    assert statuses == [200] * 5 + [429]
