from fastapi import Header

ANONYMOUS_USER_ID = "anonymous"


def get_requester_id(x_user_id: str = Header(default="")) -> str:
    """Requester identity as forwarded by the upstream gateway."""
    user_id = x_user_id.strip()
    return user_id or ANONYMOUS_USER_ID
