import time

import pytest

from templink.errors import InvalidSlug, InvalidUrl
from templink.services.links import validate_slug, validate_url
from templink.utils import ALPHABET, generate_random_code, now_ms


def test_random_code_uses_url_safe_alphabet():
    code = generate_random_code()
    assert len(code) == 8
    assert set(code) <= set(ALPHABET)
    assert len(generate_random_code(12)) == 12


def test_random_codes_differ():
    assert len({generate_random_code() for _ in range(50)}) == 50


def test_now_ms_is_epoch_millis():
    assert abs(now_ms() - time.time() * 1000) < 1000


@pytest.mark.parametrize("url", ["https://example.com", "http://localhost:3000/a?b=c", " https://x.io/path "])
def test_validate_url_accepts_absolute_http(url):
    assert validate_url(url) == url.strip()


@pytest.mark.parametrize("url", ["javascript:alert(1)", "mailto:a@b.com", "http://", "https//missing-colon.com"])
def test_validate_url_rejects(url):
    with pytest.raises(InvalidUrl):
        validate_url(url)


def test_validate_slug():
    assert validate_slug("My_Link-1") == "My_Link-1"
    with pytest.raises(InvalidSlug):
        validate_slug("x" * 65)
    with pytest.raises(InvalidSlug):
        validate_slug("DOCS")


def test_invalid_url_message_names_allowed_schemes():
    with pytest.raises(InvalidUrl) as excinfo:
        validate_url("ftp://example.com/file")
    assert "http and https" in excinfo.value.message
