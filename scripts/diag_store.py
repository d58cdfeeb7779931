#!/usr/bin/env python3
import sys
import uuid
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.backend.storage import build_store


def main() -> None:
    store = build_store()
    print(f"Storage: {store.storage_name}")

    key = f"diag_{uuid.uuid4().hex}"
    payload = {"probe": uuid.uuid4().hex, "items": [1, 2, 3]}

    store.set(key, payload)
    roundtrip = store.get(key)
    print(f"Read back: {roundtrip}")
    if roundtrip != payload:
        raise RuntimeError("Store roundtrip mismatch.")

    merged = store.merge(key, {"extra": True})
    if merged.get("extra") is not True or merged.get("probe") != payload["probe"]:
        raise RuntimeError("Store merge mismatch.")

    store.set(key, None)
    print("Store diagnostics passed.")


if __name__ == "__main__":
    main()
