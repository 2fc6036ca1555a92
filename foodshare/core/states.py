DONATION_STATES = ["pending", "accepted", "completed", "cancelled"]

TERMINAL_DONATION_STATES = {"completed", "cancelled"}

# pending -> accepted only happens through the matching service (CAS on status).
# Who may make each move is checked by the service that performs it.
TRANSITIONS = {
    ("pending",  "accepted"),
    ("pending",  "cancelled"),
    ("accepted", "completed"),
    ("accepted", "cancelled"),
}

DELIVERY_TRANSITIONS = {
    ("none",                 "available_for_pickup"),
    ("available_for_pickup", "assigned"),
    ("assigned",             "picked_up"),
    ("picked_up",            "delivered"),
}

ACCOUNT_TRANSITIONS = {
    ("active",    "suspended"),
    ("active",    "banned"),
    ("suspended", "active"),
    ("suspended", "banned"),
}


def delivery_state(doc: dict) -> str:
    return doc.get("delivery_status") or "none"


def is_legal(src: str, dst: str) -> bool:
    return (src, dst) in TRANSITIONS


def is_legal_delivery(src: str, dst: str) -> bool:
    return (src, dst) in DELIVERY_TRANSITIONS


def is_legal_account(src: str, dst: str) -> bool:
    return (src, dst) in ACCOUNT_TRANSITIONS
