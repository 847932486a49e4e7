"""HMAC-SHA256 callback signature verification."""

import hashlib
import hmac

import pytest

from spyglass.core.exceptions import RepositoryError
from spyglass.services import CallbackVerifier, Verification, compute_signature
from spyglass.services.verifier import signatures_match

from tests.conftest import SECRET, TIMESTAMP, FakeRepository, make_subscription

BODY = b'{"subscription":{"id":"sub-1"},"event":{}}'


@pytest.fixture()
def verifier(repository: FakeRepository) -> CallbackVerifier:
    repository.records["sub-1"] = make_subscription("sub-1")
    return CallbackVerifier(repository)


def test_signature_format():
    expected = hmac.new(
        SECRET.encode(), b"msg-1" + TIMESTAMP.encode() + BODY, hashlib.sha256
    ).hexdigest()

    assert compute_signature(SECRET, "msg-1", TIMESTAMP, BODY) == f"sha256={expected}"


def test_signature_is_lowercase_hex():
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)

    digest = signature.removeprefix("sha256=")
    assert len(digest) == 64
    assert digest == digest.lower()


def test_signatures_match_rejects_missing_header():
    assert signatures_match("sha256=abc", None) is False
    assert signatures_match("sha256=abc", "") is False


async def test_valid_signature_verifies(verifier: CallbackVerifier):
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)

    result = await verifier.check("sub-1", "msg-1", TIMESTAMP, BODY, signature)

    assert result.outcome is Verification.VERIFIED
    assert result.subscription is not None
    assert await verifier.verify("sub-1", "msg-1", TIMESTAMP, BODY, signature) is True


async def test_unknown_subscription_fails(verifier: CallbackVerifier):
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)

    result = await verifier.check("sub-404", "msg-1", TIMESTAMP, BODY, signature)

    assert result.outcome is Verification.UNKNOWN_SUBSCRIPTION
    assert not result


async def test_wrong_secret_fails(verifier: CallbackVerifier):
    signature = compute_signature("another-secret", "msg-1", TIMESTAMP, BODY)

    result = await verifier.check("sub-1", "msg-1", TIMESTAMP, BODY, signature)

    assert result.outcome is Verification.SIGNATURE_MISMATCH


async def test_uppercase_hex_fails(verifier: CallbackVerifier):
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)
    upper = "sha256=" + signature.removeprefix("sha256=").upper()

    assert await verifier.verify("sub-1", "msg-1", TIMESTAMP, BODY, upper) is False


@pytest.mark.parametrize("index", [0, 10, len(BODY) - 1])
async def test_body_mutation_fails(verifier: CallbackVerifier, index: int):
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)
    mutated = bytearray(BODY)
    mutated[index] ^= 0x01

    assert await verifier.verify("sub-1", "msg-1", TIMESTAMP, bytes(mutated), signature) is False


async def test_message_id_mutation_fails(verifier: CallbackVerifier):
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)

    assert await verifier.verify("sub-1", "msg-2", TIMESTAMP, BODY, signature) is False


async def test_timestamp_mutation_fails(verifier: CallbackVerifier):
    signature = compute_signature(SECRET, "msg-1", TIMESTAMP, BODY)
    shifted = TIMESTAMP.replace("45", "46")

    assert await verifier.verify("sub-1", "msg-1", shifted, BODY, signature) is False


async def test_repository_errors_propagate(
    verifier: CallbackVerifier, repository: FakeRepository
):
    repository.fail = True

    with pytest.raises(RepositoryError):
        await verifier.verify("sub-1", "msg-1", TIMESTAMP, BODY, "sha256=00")
