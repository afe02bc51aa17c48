from fastapi import Header, HTTPException, status


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> int | None:
    """Acting user id forwarded by the gateway; identity is verified upstream."""
    if x_actor_id is None or not x_actor_id.strip():
        return None
    try:
        return int(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-Actor-Id header")


def require_actor(x_actor_id: str | None = Header(default=None)) -> int:
    actor_id = get_actor_id(x_actor_id)
    if actor_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Actor-Id header")
    return actor_id
