import hashlib
import hmac

import pytest

from backend.core import errors
from backend.services.webhook_security import (
    compute_hmac_sha512,
    constant_time_compare,
    verify_paystack_signature,
)

SECRET = 'sk_test_secret'
BODY = b'{"event":"charge.success","data":{"reference":"apt1_abc"}}'


def test_signature_is_hex_hmac_sha512_of_the_raw_body() -> None:
    expected = hmac.new(SECRET.encode('utf-8'), BODY, hashlib.sha512).hexdigest()

    assert compute_hmac_sha512(SECRET, BODY) == expected


def test_valid_signature_passes() -> None:
    verify_paystack_signature(BODY, compute_hmac_sha512(SECRET, BODY), SECRET)


def test_uppercase_signature_passes() -> None:
    verify_paystack_signature(BODY, compute_hmac_sha512(SECRET, BODY).upper(), SECRET)


@pytest.mark.parametrize('signature', [None, '', 'deadbeef'])
def test_bad_or_missing_signature_is_rejected(signature) -> None:
    with pytest.raises(errors.SignatureMismatchError):
        verify_paystack_signature(BODY, signature, SECRET)


def test_body_tampering_is_detected() -> None:
    signature = compute_hmac_sha512(SECRET, BODY)

    with pytest.raises(errors.SignatureMismatchError):
        verify_paystack_signature(BODY.replace(b'apt1', b'apt2'), signature, SECRET)


def test_constant_time_compare_refuses_empty_values() -> None:
    assert constant_time_compare('abc', 'abc')
    assert not constant_time_compare('', '')
    assert not constant_time_compare('abc', 'abd')
