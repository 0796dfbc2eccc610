import json


def shorten_body(body: str | None, max_len: int = 40) -> str | None:
    if body is None:
        return None
    return body if len(body) <= max_len else f"{body[:max_len]}... ({len(body)} chars)"

def preview_hex(data: bytes, max_bytes: int = 24) -> str:
    shown = " ".join(f"{b:02x}" for b in data[:max_bytes])
    if len(data) > max_bytes:
        return f"hex:{shown}... ({len(data)} bytes)"
    return f"hex:{shown} ({len(data)} bytes)"

def webhook_summary(raw: bytes) -> str:
    """
    One-line description of a payload, for logs only.

    JSON bodies give "type:<x>" / "event:<x>" / "action:<x>" plus a short id;
    other text gives a 40-char preview; non-UTF-8 gives a hex preview.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return preview_hex(raw)

    try:
        doc = json.loads(text)
    except ValueError:
        doc = None

    if isinstance(doc, dict):
        parts = []
        for key in ("type", "event", "action"):
            value = doc.get(key)
            if isinstance(value, str):
                parts.append(f"{key}:{value}")
                break

        msg_id = doc.get("id")
        if isinstance(msg_id, str):
            parts.append(f"id:{msg_id[:8]}..." if len(msg_id) > 12 else f"id:{msg_id}")

        if parts:
            return " ".join(parts)

    return shorten_body(text, 40)
