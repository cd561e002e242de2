from siteapi.moderation import ModerationLedger
from siteapi.moderation.models import BlockEntry


def check(client, ip, action="newsletter"):
    return client.post_from("/api/check-rate-limit", ip, json={"action": action})


def test_invalid_action_is_rejected(client, public_ip):
    response = check(client, public_ip, action="bogus")

    assert response.status_code == 400
    data = response.get_json()
    assert data["error"] == "Invalid action"
    assert data["validActions"] == ["newsletter", "donation", "contact", "signup"]


def test_missing_action_is_rejected(client, public_ip):
    response = client.post_from("/api/check-rate-limit", public_ip, json={})

    assert response.status_code == 400


def test_allowed_then_rate_limited(client, public_ip):
    for _ in range(3):
        response = check(client, public_ip)
        assert response.status_code == 200
        assert response.get_json() == {"allowed": True, "message": "Request allowed"}

    response = check(client, public_ip)

    assert response.status_code == 429
    data = response.get_json()
    assert data["allowed"] is False
    assert data["rateLimited"] is True
    assert data["retryAfterMinutes"] == 60


def test_first_forwarded_address_is_the_client(client, public_ip):
    for _ in range(3):
        check(client, f"{public_ip}, 10.0.0.1")

    response = check(client, "192.0.2.200, " + public_ip)

    assert response.status_code == 200


def test_blocked_client_gets_appeal_url(client, services, public_ip):
    services.ledger.upsert_block(BlockEntry(ip=public_ip, reason="Spam & abuse"))

    response = check(client, public_ip, action="contact")

    assert response.status_code == 403
    data = response.get_json()
    assert data["blocked"] is True
    assert data["appealUrl"] == "/blocked.html?reason=Spam%20%26%20abuse"


def test_spam_range_is_auto_blocked(client, tables, notifier):
    response = check(client, "185.220.101.4")

    assert response.status_code == 403
    assert response.get_json()["reason"] == "Suspicious IP address detected"
    assert tables.records(ModerationLedger.BLOCKED_IPS)[0].get("IP") == "185.220.101.4"
    assert notifier.types() == ["ip_blocked"]


def test_flagged_client_is_reported_and_tightened(client, reputation, tables, public_ip):
    reputation.flag(public_ip, type="TOR")

    first = check(client, public_ip)
    second = check(client, public_ip)

    assert first.status_code == 200
    assert first.get_json()["vpnType"] == "TOR"
    assert second.status_code == 429
    assert len(tables.records(ModerationLedger.VPN_ALERTS)) == 1


def test_store_outage_still_admits(client, tables, public_ip):
    tables.error = ConnectionError("store unreachable")

    response = check(client, public_ip)

    assert response.status_code == 200


def test_client_ip_header_is_used_without_forwarded_for(client, services, public_ip):
    services.ledger.upsert_block(BlockEntry(ip=public_ip, reason="Spam"))

    response = client.post(
        "/api/check-rate-limit", json={"action": "signup"}, headers={"Client-IP": public_ip}
    )

    assert response.status_code == 403
