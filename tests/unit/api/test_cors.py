"""Unit tests for CorsPolicy: origin echo for allow-listed origins, default otherwise."""

from concierge.api.cors import CorsPolicy

POLICY = CorsPolicy.from_origins(["http://localhost:8081", "https://sevenkeys.app"], "https://sevenkeys.app")


def test_listed_origin_is_echoed():
    assert POLICY.origin_for("http://localhost:8081") == "http://localhost:8081"


def test_unlisted_or_missing_origin_gets_the_default():
    assert POLICY.origin_for("https://evil.example") == "https://sevenkeys.app"
    assert POLICY.origin_for(None) == "https://sevenkeys.app"


def test_headers_are_complete():
    headers = POLICY.headers_for("http://localhost:8081")

    assert headers["Access-Control-Allow-Methods"] == "POST, GET, OPTIONS"
    assert headers["Access-Control-Allow-Headers"] == "authorization, x-client-info, apikey, content-type"
    assert headers["Access-Control-Allow-Credentials"] == "true"
    assert headers["Vary"] == "Origin"
