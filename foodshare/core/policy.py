ROLE_SCOPES = {
    "donor": [
        "donations:create", "donations:edit", "donations:delete", "donations:cancel",
    ],
    "ngo": [
        "donations:accept", "donations:request_pickup", "donations:complete",
        "donations:cancel", "complaints:create", "inventory:manage",
    ],
    "volunteer": ["deliveries:claim", "deliveries:update"],
}

def roles_to_scopes(roles):
    scopes = set()
    for r in roles:
        scopes.update(ROLE_SCOPES.get(r, []))
    return list(scopes)
