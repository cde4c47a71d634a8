"""Input shape checks for API payloads."""
from urllib.parse import urlparse


def validate_transcript(transcript) -> bool:
    return isinstance(transcript, str) and len(transcript.strip()) > 0


def validate_service_registration(base_url, api_key) -> bool:
    if not base_url or not isinstance(base_url, str):
        return False
    if not api_key or not isinstance(api_key, str):
        return False
    # sent back verbatim as an HTTP header value
    if not api_key.isascii() or not api_key.isprintable():
        return False

    parsed = urlparse(base_url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
