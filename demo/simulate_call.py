#!/usr/bin/env python3
"""
demo/simulate_call.py

Usage:
  python demo/simulate_call.py --call-sid DEMO_SESSION_ID --reset
  python demo/simulate_call.py --call-sid CALL_42 --scenario refill

Drives a running AURIX server. `scripted` (default) asks the server to play its
canned delivery-delay call; the other scenarios call the agent tool endpoints
the way the conversational agent would. The summary and notes are printed once
the call has ended.
"""
import argparse
import json
import os
import time
import requests

DEFAULT_BASE = "http://localhost:8000"

SCENARIOS = {
    "order": [
        ("query-order", {"order_number": "417", "customer_name": "Tom"}),
        ("send-sms", {"recipient_phone": "+447700900001", "message_type": "tracking", "order_id": "ORD_7823", "tracking_number": "TRK789012"}),
    ],
    "refill": [
        ("request-refill", {"customer_phone": "+447700900001", "prescription_id": "RX_1001", "verification_last4": "4821"}),
    ],
    "address": [
        ("update-address", {"customer_phone": "+447700900002", "order_id": "ORD_7824", "new_address_type": "office", "verification_code": "123456"}),
    ],
    "medical": [
        ("handle-inquiry", {"inquiry_type": "side_effects", "question_text": "Is it safe to take this with ibuprofen?"}),
        ("book-callback", {"callback_reason": "Medication interaction question"}),
    ],
}


def _headers(webhook_secret=None):
    headers = {"Content-Type": "application/json"}
    if webhook_secret:
        headers["X-Webhook-Secret"] = webhook_secret
    return headers


def reset(base_url, call_sid):
    resp = requests.delete(f"{base_url.rstrip('/')}/api/sessions/{call_sid}", timeout=10)
    resp.raise_for_status()
    return resp.json()


def start_simulation(base_url, call_sid):
    resp = requests.post(f"{base_url.rstrip('/')}/api/simulate-call", json={"callSid": call_sid}, timeout=10)
    resp.raise_for_status()
    return resp.json()


def run_tools(base_url, call_sid, steps, webhook_secret=None):
    base = base_url.rstrip("/")
    requests.post(f"{base}/api/sessions/{call_sid}/start", timeout=10).raise_for_status()
    for tool, payload in steps:
        resp = requests.post(
            f"{base}/api/tools/{tool}",
            json={**payload, "call_sid": call_sid},
            headers=_headers(webhook_secret),
            timeout=30,
        )
        resp.raise_for_status()
        result = resp.json()
        print(f"[{tool}] ok={result['ok']} reason={result.get('reason')}")
        print(f"  agent: {result['response']}")
    resp = requests.post(f"{base}/api/sessions/{call_sid}/end", json={"duration": 60, "resolution": "demo"}, timeout=10)
    resp.raise_for_status()


def wait_for_summary(base_url, call_sid, timeout=30, interval=1):
    base = base_url.rstrip("/")
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            state = requests.get(f"{base}/api/sessions/{call_sid}/lifecycle", timeout=5).json()
            if state.get("state") == "summarizing":
                return requests.get(f"{base}/api/sessions/{call_sid}/summary", timeout=5).json()
        except requests.RequestException:
            pass
        time.sleep(interval)
    return None


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--base", default=os.environ.get("BASE_URL", DEFAULT_BASE))
    parser.add_argument("--call-sid", default=os.environ.get("DEMO_SESSION_ID", "DEMO_SESSION_ID"))
    parser.add_argument("--scenario", choices=["scripted", *SCENARIOS], default="scripted")
    parser.add_argument("--reset", action="store_true", help="Clear the session before running")
    parser.add_argument("--webhook-secret", default=os.environ.get("WEBHOOK_SECRET"))
    parser.add_argument("--timeout", type=int, default=30)
    args = parser.parse_args()

    if args.reset:
        print("[info] reset:", reset(args.base, args.call_sid))

    if args.scenario == "scripted":
        print("[info] simulate:", start_simulation(args.base, args.call_sid))
    else:
        run_tools(args.base, args.call_sid, SCENARIOS[args.scenario], webhook_secret=args.webhook_secret)

    print("[info] waiting for the call to end...")
    summary = wait_for_summary(args.base, args.call_sid, timeout=args.timeout)
    if summary:
        print(json.dumps(summary["summary"], indent=2))
        print()
        print(summary["notes"])
    else:
        print("[warn] call did not reach summarizing within timeout. Check logs at server side.")


if __name__ == "__main__":
    main()
