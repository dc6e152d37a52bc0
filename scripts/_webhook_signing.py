import hashlib
import hmac
import json
import time
from typing import Optional


def canonical_json_bytes(payload) -> bytes:
    return json.dumps(
        payload,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")


def hmac_sha256_hex(secret: str, body_bytes: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha256).hexdigest()


def stripe_signature_header(secret: str, body_bytes: bytes, timestamp: Optional[int] = None) -> dict[str, str]:
    """
    Stripe-Signature header for a locally built event body: `t=<ts>,v1=<hmac of "ts.body">`.
    """
    ts = int(time.time()) if timestamp is None else int(timestamp)
    signed = f"{ts}.".encode("utf-8") + body_bytes
    return {"Stripe-Signature": f"t={ts},v1={hmac_sha256_hex(secret, signed)}"}


def payment_intent_event(event_type: str, application_id: str, intent_id: str = "pi_local_test") -> dict:
    return {
        "id": f"evt_{intent_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": 2000,
                "currency": "usd",
                "metadata": {"applicationId": application_id},
            }
        },
    }


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Print a signed Stripe payment_intent event for local testing.")
    parser.add_argument("application_id")
    parser.add_argument("--secret", required=True)
    parser.add_argument("--event", default="payment_intent.succeeded")
    args = parser.parse_args()

    body = canonical_json_bytes(payment_intent_event(args.event, args.application_id))
    print(stripe_signature_header(args.secret, body)["Stripe-Signature"])
    print(body.decode("utf-8"))
