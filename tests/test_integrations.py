from unittest.mock import MagicMock

import pytest
import requests

from siteapi.admission.reputation import ReputationClient, ReputationError, risk_tier
from siteapi.config import ConfigurationError
from siteapi.integrations import (
    DisabledTableClient,
    DiscordNotifier,
    GraphMailer,
    MailerError,
    NotifierError,
    NullMailer,
    TableClient,
    TableStoreError,
)
from siteapi.integrations.tables import all_of, field_equals, field_equals_ci


def fake_response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data if json_data is not None else {}
    response.content = b"{}" if json_data is not None else b""
    response.text = text
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


class TestTableClient:

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.headers = {}
        return session

    @pytest.fixture
    def client(self, session):
        return TableClient("pat_token", "appBase", session=session)

    def test_formula_helpers_escape_quotes(self):
        assert field_equals("IP", "1.2.3.4") == "{IP} = '1.2.3.4'"
        assert field_equals_ci("Email", "O'Neil@Example.com") == "LOWER({Email}) = 'o\\'neil@example.com'"
        assert all_of("{A} = '1'", "", "{B} = '2'") == "AND({A} = '1', {B} = '2')"

    def test_select_follows_pagination(self, client, session):
        session.request.side_effect = [
            fake_response(json_data={"records": [{"id": "rec1", "fields": {"IP": "a"}}], "offset": "next"}),
            fake_response(json_data={"records": [{"id": "rec2", "fields": {"IP": "b"}}]}),
        ]

        records = client.select("BlockedIPs", formula="{IP} = 'a'", sort=[("BlockedDate", "desc")])

        assert [r.id for r in records] == ["rec1", "rec2"]
        first_params = session.request.call_args_list[0].kwargs["params"]
        assert ("filterByFormula", "{IP} = 'a'") in first_params
        assert ("sort[0][direction]", "desc") in first_params
        assert ("offset", "next") in session.request.call_args_list[1].kwargs["params"]

    def test_find_missing_record_returns_none(self, client, session):
        session.request.return_value = fake_response(404, text="NOT_FOUND")

        assert client.find("Appeals", "rec_missing") is None

    def test_server_errors_raise(self, client, session):
        session.request.return_value = fake_response(422, text="INVALID_FILTER")

        with pytest.raises(TableStoreError) as exc:
            client.select("Appeals")
        assert exc.value.status_code == 422

    def test_network_errors_raise(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TableStoreError):
            client.create("Appeals", {"IP": "a"})

    def test_create_sends_typecast(self, client, session):
        session.request.return_value = fake_response(
            json_data={"records": [{"id": "rec9", "fields": {"IP": "a"}, "createdTime": "2024-01-01T00:00:00.000Z"}]}
        )

        record = client.create("Appeals", {"IP": "a"})

        assert record.id == "rec9"
        assert session.request.call_args.kwargs["json"]["typecast"] is True

    def test_missing_credentials(self):
        with pytest.raises(TableStoreError):
            TableClient("", "appBase")

    def test_disabled_client_raises_configuration_error(self):
        with pytest.raises(ConfigurationError):
            DisabledTableClient().select("Appeals")


class TestNotifier:

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.post.return_value = fake_response(204)
        return session

    def test_unconfigured_notifier_drops_messages(self, session):
        notifier = DiscordNotifier(None, session=session)

        assert notifier.send("new_subscriber", {"email": "a@example.com"}) is False
        session.post.assert_not_called()

    def test_posts_an_embed(self, session):
        notifier = DiscordNotifier("https://chat.example/webhook", mention_id="<@1>", session=session)

        assert notifier.send("ip_blocked", {"ip": "45.155.1.1", "autoBlocked": True})

        payload = session.post.call_args.kwargs["json"]
        embed = payload["embeds"][0]
        assert embed["title"] == "IP Blocked"
        assert {"name": "Auto-blocked", "value": "Yes", "inline": True} in embed["fields"]
        assert "content" not in payload

    @pytest.mark.parametrize("type,data,pinged", [
        ("block_appeal", {"appealType": "IP_Block"}, True),
        ("error_alert", {"message": "boom"}, True),
        ("new_donation", {"amount": "25.00"}, True),
        ("new_donation", {"amount": "5.00"}, False),
        ("new_subscriber", {"email": "a@example.com"}, False),
    ])
    def test_mentions(self, session, type, data, pinged):
        notifier = DiscordNotifier("https://chat.example/webhook", mention_id="<@1>", session=session)

        notifier.send(type, data)

        payload = session.post.call_args.kwargs["json"]
        assert (payload.get("content") == "<@1>") is pinged

    def test_unknown_type_uses_generic_embed(self):
        embed = DiscordNotifier.build_embed("something_else", {"message": "hello"})

        assert embed["title"] == "Notification"
        assert embed["description"] == "hello"
        assert embed["timestamp"]

    def test_webhook_failure_raises(self, session):
        session.post.return_value = fake_response(500, text="oops")
        notifier = DiscordNotifier("https://chat.example/webhook", session=session)

        with pytest.raises(NotifierError):
            notifier.send("new_subscriber", {})

    def test_webhook_timeout_raises(self, session):
        session.post.side_effect = requests.Timeout("slow")
        notifier = DiscordNotifier("https://chat.example/webhook", timeout=3.0, session=session)

        with pytest.raises(NotifierError):
            notifier.send("new_subscriber", {})
        assert session.post.call_args.kwargs["timeout"] == 3.0


class TestReputation:

    @pytest.fixture
    def session(self):
        return MagicMock()

    def test_flagged_address(self, session):
        session.get.return_value = fake_response(json_data={
            "status": "ok",
            "8.8.4.4": {"proxy": "yes", "type": "VPN", "risk": 80, "asn": "AS15169", "provider": "Example"},
        })
        client = ReputationClient(api_key="k", session=session, timeout=3.0)

        info = client.lookup("8.8.4.4")

        assert info.is_flagged
        assert info.risk == "high"
        assert info.asn == "AS15169"
        assert session.get.call_args.kwargs["params"]["key"] == "k"
        assert session.get.call_args.kwargs["timeout"] == 3.0

    def test_clean_address(self, session):
        session.get.return_value = fake_response(json_data={
            "status": "ok", "8.8.4.4": {"proxy": "no", "type": "Business", "risk": 5},
        })

        info = ReputationClient(session=session).lookup("8.8.4.4")

        assert not info.is_flagged
        assert info.risk == "low"

    @pytest.mark.parametrize("ip", ["127.0.0.1", "10.1.2.3", "Unknown", "::1"])
    def test_private_addresses_are_not_looked_up(self, session, ip):
        info = ReputationClient(session=session).lookup(ip)

        assert not info.is_flagged
        session.get.assert_not_called()

    def test_timeout_raises(self, session):
        session.get.side_effect = requests.Timeout("slow")

        with pytest.raises(ReputationError):
            ReputationClient(session=session).lookup("8.8.4.4")

    def test_denied_status_raises(self, session):
        session.get.return_value = fake_response(json_data={"status": "denied", "message": "quota"})

        with pytest.raises(ReputationError):
            ReputationClient(session=session).lookup("8.8.4.4")

    @pytest.mark.parametrize("score,tier", [(None, "unknown"), (0, "low"), (50, "medium"), (67, "high")])
    def test_risk_tiers(self, score, tier):
        assert risk_tier(score) == tier


class TestMailer:

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.post.side_effect = self._route
        return session

    @staticmethod
    def _route(url, **kwargs):
        if "oauth2" in url:
            return fake_response(json_data={"access_token": "tok", "expires_in": 3600})
        return fake_response(202)

    def test_token_is_cached_until_near_expiry(self, session):
        now = [1000.0]
        mailer = GraphMailer("tenant", "client", "secret", "owner@example.com", session=session, clock=lambda: now[0])

        mailer.send("a@example.com", "One", html_body="<p>1</p>")
        mailer.send("b@example.com", "Two", text_body="2")
        now[0] += 3600 - 30
        mailer.send("c@example.com", "Three", text_body="3")

        token_calls = [c for c in session.post.call_args_list if "oauth2" in c.args[0]]
        assert len(token_calls) == 2

    def test_message_shape(self, session):
        mailer = GraphMailer("tenant", "client", "secret", "owner@example.com", session=session)

        mailer.send("a@example.com", "Hello", text_body="plain", reply_to="pat@example.com")

        send_call = session.post.call_args_list[-1]
        assert send_call.args[0].endswith("/users/owner@example.com/sendMail")
        assert send_call.kwargs["headers"]["Authorization"] == "Bearer tok"
        message = send_call.kwargs["json"]["message"]
        assert message["body"] == {"contentType": "Text", "content": "plain"}
        assert message["replyTo"] == [{"emailAddress": {"address": "pat@example.com"}}]

    def test_send_failure_raises(self, session):
        session.post.side_effect = [
            fake_response(json_data={"access_token": "tok", "expires_in": 3600}),
            fake_response(403, text="ErrorAccessDenied"),
        ]
        mailer = GraphMailer("tenant", "client", "secret", "owner@example.com", session=session)

        with pytest.raises(MailerError):
            mailer.send("a@example.com", "Hello", text_body="x")

    def test_missing_credentials(self):
        with pytest.raises(MailerError):
            GraphMailer("tenant", "", "secret", "owner@example.com")

    def test_null_mailer(self):
        assert NullMailer().send("a@example.com", "Hello") is False
        assert NullMailer().configured is False
