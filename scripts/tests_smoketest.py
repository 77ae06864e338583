# scripts/tests_smoketest.py
# Run against a live relay: RELAY_URI=ws://127.0.0.1:8081/ws python scripts/tests_smoketest.py
from __future__ import annotations
import asyncio, json, os

from websockets.asyncio.client import connect

URI = os.environ.get("RELAY_URI", "ws://127.0.0.1:8081/ws")
PRODUCER_HEADERS = {"X-Device-Type": "arduino-publisher"}


async def recv_json(ws, timeout=3):
    return json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))


async def run_smoke_test():
    print("Starting smoke test against", URI)

    producer = await connect(URI, additional_headers=PRODUCER_HEADERS)
    dash_a = await connect(URI)
    dash_b = await connect(URI)
    await asyncio.sleep(0.2)  # let the relay register everyone
    print("[producer] + 2 dashboards connected")

    # Sample with conductivity is fanned out
    sample = {"C": 450, "PH": 7.1, "T": 21.4}
    await producer.send(json.dumps(sample))
    got_a = await recv_json(dash_a)
    got_b = await recv_json(dash_b)
    # relay may be running with WRAP_SAMPLES=True
    got_a = got_a.get("payload", got_a)
    got_b = got_b.get("payload", got_b)
    assert got_a == sample and got_b == sample, (got_a, got_b)
    print("[dashboards] <- sample OK")

    # Missing conductivity is dropped
    await producer.send(json.dumps({"PH": 7.3}))
    try:
        extra = await recv_json(dash_a, timeout=0.5)
        raise AssertionError(f"unexpected delivery: {extra}")
    except asyncio.TimeoutError:
        print("[dashboards] frame without C dropped OK")

    # Late joiner gets the latest sample immediately
    late = await connect(URI)
    replay = await recv_json(late)
    assert replay.get("payload", replay) == sample, replay
    print("[late dashboard] <- replay OK")

    await producer.close(); await dash_a.close(); await dash_b.close(); await late.close()
    print("Smoke test PASSED")


if __name__ == "__main__":
    asyncio.run(run_smoke_test())
