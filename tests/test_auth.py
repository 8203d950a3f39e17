import pytest

from roster_sms.auth import AccessControl, NotAuthorized, PasscodeRequired, sha256_hex
from roster_sms.config import Settings
from roster_sms.kv import KeyValueStore, MemoryBackend

PASS_HASH = sha256_hex("open sesame")


def _access(admins="ops@club.org, lead@club.org", passcode_hash=PASS_HASH, clock=None):
    now = clock or [1_000_000.0]
    settings = Settings(admin_emails=admins, passcode_sha256=passcode_hash, force_in_memory=True)
    kv = KeyValueStore(settings, memory=MemoryBackend(clock=lambda: now[0]))
    return AccessControl(settings, kv, clock=lambda: now[0]), now


def test_sha256_hex_normalizes_input():
    assert sha256_hex("  open sesame ") == PASS_HASH
    assert sha256_hex("cafe\u0301") == sha256_hex("caf\u00e9")


def test_admin_allow_list():
    access, _ = _access("ops@club.org; Lead@Club.org\nthird@club.org")
    assert access.is_admin("OPS@club.org")
    assert access.is_admin(" lead@club.org ")
    assert access.is_admin("third@club.org")
    assert not access.is_admin("someone@club.org")
    assert not access.is_admin("")


def test_empty_allow_list_denies_and_star_allows():
    deny, _ = _access("")
    assert not deny.is_admin("ops@club.org")
    allow, _ = _access("*")
    assert allow.is_admin("anyone@club.org")


def test_passcode_session_lifecycle():
    access, now = _access()
    user = "ops@club.org"

    with pytest.raises(PasscodeRequired):
        access.require(user)

    assert access.check_passcode(user, "wrong") is False
    assert access.needs_passcode(user)

    assert access.check_passcode(user, " open sesame ") is True
    access.require(user)

    now[0] += 12 * 60 * 60 + 1
    assert access.needs_passcode(user)


def test_non_admin_is_rejected_before_passcode():
    access, _ = _access()
    with pytest.raises(NotAuthorized):
        access.require("stranger@club.org")


def test_no_configured_passcode_means_no_session_needed():
    access, _ = _access(passcode_hash="")
    assert access.needs_passcode("ops@club.org") is False
    assert access.check_passcode("ops@club.org", "anything") is False
    access.require("ops@club.org")


def test_reset_session():
    access, _ = _access()
    access.check_passcode("ops@club.org", "open sesame")
    access.reset_session("ops@club.org")
    assert access.needs_passcode("ops@club.org")
