import pytest

from siteapi.services.analytics_service import normalize_page, normalize_referrer

PAGE_VIEWS = "PageViews"


@pytest.mark.parametrize("raw,expected", [
    (None, "/"),
    ("", "/"),
    ("/blog/post-1", "/blog/post-1"),
    ("blog", "/blog"),
    ("/donate.html?utm_source=x#top", "/donate.html"),
    ("https://example.com/about?ref=1", "/about"),
    ("https://example.com", "/"),
])
def test_normalize_page(raw, expected):
    assert normalize_page(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    (None, "Direct"),
    ("-", "Direct"),
    ("https://www.google.com/", "www.google.com"),
    ("https://news.example.org/item?id=5", "news.example.org/item"),
    ("android-app://com.slack", "com.slack"),
    ("not a url", "not a url"),
])
def test_normalize_referrer(raw, expected):
    assert normalize_referrer(raw) == expected


def test_track_page_view(client, tables):
    response = client.post_from(
        "/api/page-views",
        "198.51.100.80",
        json={"page": "/projects?tab=2", "referrer": "https://github.com/someone", "sessionId": "s1"},
    )

    assert response.status_code == 201
    record = tables.records(PAGE_VIEWS)[0]
    assert record.get("Page") == "/projects"
    assert record.get("Referrer") == "github.com/someone"
    assert record.get("IP") == "198.51.100.80"
    assert record.get("Device") == "Unknown"


def test_page_is_required(client):
    assert client.post("/api/page-views", json={"referrer": "x"}).status_code == 400


def test_stats(client, tables):
    views = [
        ("/", "Direct", "s1"),
        ("/", "Direct", "s2"),
        ("/blog", "google.com", "s1"),
        ("/", "google.com", ""),
    ]
    for page, referrer, session in views:
        tables.add(PAGE_VIEWS, {
            "Page": page,
            "Referrer": referrer,
            "SessionId": session,
            "IP": "203.0.113.1",
            "Timestamp": "2024-05-01T00:00:00Z",
        })

    response = client.authenticated_get("/api/admin/page-stats")

    assert response.status_code == 200
    data = response.get_json()
    assert data["totalPageViews"] == 4
    # s1, s2 and the sessionless visitor's IP
    assert data["uniqueVisitors"] == 3
    assert data["topPages"][0] == {"page": "/", "count": 3}
    assert {"referrer": "google.com", "count": 2} in data["topReferrers"]
