# foodshare/routers/serializers.py

PRIVATE_USER_FIELDS = {"password_hash", "ip_address", "user_agent"}


def user_out(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS}


def donation_out(doc: dict) -> dict:
    out = dict(doc)
    out["history_count"] = len(out.pop("history", []) or [])
    out.setdefault("delivery_status", None)
    return out


def donation_detail(doc: dict) -> dict:
    out = donation_out(doc)
    out["history"] = doc.get("history", [])
    return out


def chat_out(doc: dict) -> dict:
    out = dict(doc)
    out.pop("clock", None)
    return out
