import time

import pytest

from billing import StripeWebhookConfig, WebhookVerificationError, parse_event
from conftest import WEBHOOK_SECRET, event_payload, sign_payload

CONFIG = StripeWebhookConfig(signing_secret=WEBHOOK_SECRET)


def _payload():
    return event_payload("checkout.session.completed", {"id": "cs_1", "subscription": "sub_1"}, event_id="evt_verify")


def test_valid_signature_returns_typed_event():
    payload = _payload()

    event = parse_event(payload, sign_payload(payload), CONFIG)

    assert event.id == "evt_verify"
    assert event.type == "checkout.session.completed"
    assert event.object["subscription"] == "sub_1"


def test_mutated_byte_is_rejected():
    payload = _payload()
    header = sign_payload(payload)
    tampered = payload.replace(b"sub_1", b"sub_2")

    with pytest.raises(WebhookVerificationError):
        parse_event(tampered, header, CONFIG)


def test_wrong_secret_is_rejected():
    payload = _payload()

    with pytest.raises(WebhookVerificationError):
        parse_event(payload, sign_payload(payload, secret="whsec_other"), CONFIG)


def test_reserialized_body_is_rejected():
    payload = _payload()
    header = sign_payload(payload)
    reformatted = payload.replace(b", ", b",")

    with pytest.raises(WebhookVerificationError):
        parse_event(reformatted, header, CONFIG)


def test_missing_secret_fails_closed():
    payload = _payload()

    with pytest.raises(WebhookVerificationError, match="secret"):
        parse_event(payload, sign_payload(payload), StripeWebhookConfig(signing_secret=None))


def test_missing_signature_header_is_rejected():
    with pytest.raises(WebhookVerificationError, match="Stripe-Signature"):
        parse_event(_payload(), None, CONFIG)


def test_stale_timestamp_is_rejected():
    payload = _payload()
    header = sign_payload(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(WebhookVerificationError):
        parse_event(payload, header, CONFIG)


def test_malformed_json_is_rejected():
    payload = b"{not json"

    with pytest.raises(WebhookVerificationError):
        parse_event(payload, sign_payload(payload), CONFIG)
