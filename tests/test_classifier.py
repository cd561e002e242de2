from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from urllib.parse import quote

import pytest

from siteapi.admission import AbuseClassifier, MemoryCooldownCache, MemoryWindowStore, RateLimiter
from siteapi.integrations.tables import TableStoreError
from siteapi.moderation import ModerationLedger
from siteapi.moderation.models import AllowEntry, BlockEntry, VpnAlertStatus

from fakes import FakeReputation, FakeTableClient, RecordingNotifier, TimeoutReputation

NOW = 1_700_000_000.0
MOMENT = datetime.fromtimestamp(NOW, tz=timezone.utc)
CLIENT = "198.51.100.23"


@pytest.fixture
def tables():
    return FakeTableClient()


@pytest.fixture
def ledger(tables):
    return ModerationLedger(tables)


@pytest.fixture
def reputation():
    return FakeReputation()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def classifier(ledger, reputation, notifier):
    limiter = RateLimiter(MemoryWindowStore(), random_fn=lambda: 1.0)
    return AbuseClassifier(
        ledger, limiter, reputation=reputation, notifier=notifier, cooldowns=MemoryCooldownCache()
    )


def classify_n(classifier, n, client=CLIENT, action="newsletter", start=NOW):
    return [classifier.classify(client, action, now=start + i) for i in range(n)]


def test_fresh_client_is_admitted(classifier):
    decision = classifier.classify(CLIENT, "newsletter", now=NOW)

    assert decision.allowed
    assert decision.status_code == 200
    assert decision.to_dict() == {"allowed": True, "message": "Request allowed"}


def test_fourth_newsletter_request_is_rate_limited(classifier):
    decisions = classify_n(classifier, 4)

    assert [d.allowed for d in decisions] == [True, True, True, False]
    body = decisions[-1].to_dict()
    assert decisions[-1].status_code == 429
    assert body["rateLimited"] is True
    assert body["retryAfterMinutes"] == 60
    assert body["reason"] == "Too many requests. Please try again in 60 minute(s)."


def test_allowlisted_client_skips_every_check(classifier, ledger, reputation):
    ledger.upsert_allow(AllowEntry(ip=CLIENT, note="office"))
    ledger.upsert_block(BlockEntry(ip=CLIENT, reason="spam"))

    decisions = classify_n(classifier, 10)

    assert all(d.allowed for d in decisions)
    assert decisions[0].to_dict()["allowlisted"] is True
    assert reputation.calls == []


@pytest.mark.parametrize("spam_ip", ["45.155.7.9", "185.220.101.4"])
def test_allowlisted_client_in_spam_range_is_admitted(classifier, ledger, tables, notifier, spam_ip):
    ledger.upsert_allow(AllowEntry(ip=spam_ip, note="known relay"))

    decision = classifier.classify(spam_ip, "newsletter", now=NOW)

    assert decision.allowed
    assert decision.to_dict()["allowlisted"] is True
    assert tables.records(ModerationLedger.BLOCKED_IPS) == []
    assert notifier.types() == []


def test_expired_allowlist_entry_is_ignored(classifier, ledger):
    ledger.upsert_allow(AllowEntry(ip=CLIENT, expires_at=MOMENT - timedelta(days=1)))
    ledger.upsert_block(BlockEntry(ip=CLIENT, reason="spam"))

    assert not classifier.classify(CLIENT, "contact", now=NOW).allowed


def test_active_block_rejects_with_appeal_url(classifier, ledger):
    ledger.upsert_block(BlockEntry(ip=CLIENT, reason="Abusive messages", blocked_at=MOMENT))

    decision = classifier.classify(CLIENT, "contact", now=NOW)

    assert decision.status_code == 403
    body = decision.to_dict()
    assert body["blocked"] is True
    assert body["reason"] == "Your IP has been blocked due to suspicious activity"
    assert body["appealUrl"] == "/blocked.html?reason=" + quote("Abusive messages", safe="")


def test_expired_block_is_ignored(classifier, ledger):
    ledger.upsert_block(BlockEntry(
        ip=CLIENT,
        reason="Temporary",
        blocked_at=MOMENT - timedelta(days=2),
        expires_at=MOMENT - timedelta(days=1),
    ))

    assert classifier.classify(CLIENT, "contact", now=NOW).allowed


def test_block_without_expiry_is_permanent(classifier, ledger):
    ledger.upsert_block(BlockEntry(ip=CLIENT, reason="Forever", blocked_at=MOMENT - timedelta(days=3650)))

    assert not classifier.classify(CLIENT, "signup", now=NOW).allowed


def test_spam_pattern_auto_blocks_and_notifies(classifier, tables, notifier):
    decision = classifier.classify("45.155.7.9", "newsletter", now=NOW)

    assert decision.status_code == 403
    assert decision.reason == "Suspicious IP address detected"
    assert "reason=Matched%20known%20spam%20IP%20pattern" in decision.appeal_url

    blocks = tables.records(ModerationLedger.BLOCKED_IPS)
    assert len(blocks) == 1
    assert blocks[0].get("IP") == "45.155.7.9"
    assert blocks[0].get("AutoBlocked") is True
    assert notifier.types() == ["ip_blocked"]

    # The next request hits the stored block
    again = classifier.classify("45.155.7.9", "newsletter", now=NOW + 1)
    assert again.reason == "Your IP has been blocked due to suspicious activity"
    assert len(tables.records(ModerationLedger.BLOCKED_IPS)) == 1


def test_reputation_timeout_falls_back_to_normal_limits(ledger, notifier, tables):
    limiter = RateLimiter(MemoryWindowStore(), random_fn=lambda: 1.0)
    classifier = AbuseClassifier(ledger, limiter, reputation=TimeoutReputation(), notifier=notifier)

    decisions = classify_n(classifier, 4)

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert tables.records(ModerationLedger.VPN_ALERTS) == []
    assert notifier.sent == []


def test_flagged_client_gets_strict_limits_and_one_alert(classifier, reputation, tables, notifier):
    reputation.flag(CLIENT)

    first, second = classify_n(classifier, 2)

    assert first.allowed
    assert first.to_dict()["vpnDetected"] is True
    assert first.to_dict()["vpnType"] == "VPN"
    assert not second.allowed
    assert second.status_code == 429

    alerts = tables.records(ModerationLedger.VPN_ALERTS)
    assert len(alerts) == 1
    assert alerts[0].get("Count") == 2
    assert alerts[0].get("Status") == VpnAlertStatus.OPEN.value
    # Second detection falls inside the notification cooldown
    assert notifier.types() == ["vpn_detected"]


def test_alerts_are_kept_per_action(classifier, reputation, tables):
    reputation.flag(CLIENT)

    classifier.classify(CLIENT, "newsletter", now=NOW)
    classifier.classify(CLIENT, "contact", now=NOW + 1)

    actions = sorted(r.get("Action") for r in tables.records(ModerationLedger.VPN_ALERTS))
    assert actions == ["contact", "newsletter"]


def test_detection_after_resolution_opens_a_fresh_alert(classifier, reputation, tables):
    reputation.flag(CLIENT)
    classifier.classify(CLIENT, "donation", now=NOW)
    alert = tables.records(ModerationLedger.VPN_ALERTS)[0]
    classifier.alerts.update(alert.id, "resolve")

    classifier.classify(CLIENT, "donation", now=NOW + 10)

    statuses = sorted(r.get("Status") for r in tables.records(ModerationLedger.VPN_ALERTS))
    assert statuses == ["Open", "Resolved"]


def test_vpn_notification_repeats_after_cooldown(classifier, reputation, notifier):
    reputation.flag(CLIENT)

    classifier.classify(CLIENT, "donation", now=NOW)
    classifier.classify(CLIENT, "donation", now=NOW + 60)
    classifier.classify(CLIENT, "donation", now=NOW + 16 * 60)

    assert notifier.types() == ["vpn_detected", "vpn_detected"]
    assert notifier.sent[-1][1]["count"] == 3


def test_ledger_outage_fails_open_but_still_rate_limits(classifier, tables):
    tables.error = TableStoreError("store down", status_code=503)

    decisions = classify_n(classifier, 4)

    assert [d.allowed for d in decisions] == [True, True, True, False]


def test_notifier_failure_does_not_reject(ledger, reputation):
    reputation.flag(CLIENT)
    limiter = RateLimiter(MemoryWindowStore(), random_fn=lambda: 1.0)
    classifier = AbuseClassifier(ledger, limiter, reputation=reputation, notifier=RecordingNotifier(fail=True))

    assert classifier.classify(CLIENT, "donation", now=NOW).allowed


def test_unexpected_error_admits(ledger):
    limiter = Mock()
    limiter.check_and_record.side_effect = RuntimeError("boom")
    classifier = AbuseClassifier(ledger, limiter)

    decision = classifier.classify(CLIENT, "newsletter", now=NOW)

    assert decision.allowed


def test_unknown_client_is_not_looked_up(classifier, reputation):
    decisions = classify_n(classifier, 4, client="")

    assert reputation.calls == []
    assert [d.allowed for d in decisions] == [True, True, True, False]
