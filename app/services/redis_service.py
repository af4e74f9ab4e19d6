import json

from redis import Redis

OAUTH_TX_TTL_SECONDS = 600
_PREFIX = "oauth:"


def save_oauth_tx(redis_client: Redis, state: str, data: dict) -> None:
    redis_client.setex(f"{_PREFIX}{state}", OAUTH_TX_TTL_SECONDS, json.dumps(data))


def load_oauth_tx(redis_client: Redis, state: str) -> dict | None:
    """Fetch and drop a pending OAuth transaction so each state is used once."""
    key = f"{_PREFIX}{state}"
    raw = redis_client.get(key)
    if not raw:
        return None
    redis_client.delete(key)
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
