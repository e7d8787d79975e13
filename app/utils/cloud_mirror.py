"""
Best-effort copy of application collections to a remote document store.

When ``CLOUD_MIRROR_URL`` is configured each collection is written as one
document, ``PUT {url}/school_data/{collection}`` with body ``{"items": [...]}``.
The database stays the source of truth: mirror failures are logged and
otherwise ignored.
"""

import requests
from flask import current_app


def mirror_enabled():
    return bool(current_app.config.get('CLOUD_MIRROR_URL'))


def mirror_collection(name, items):
    """
    Push one collection to the mirror.

    Returns:
        bool: True when the mirror accepted the document, False when the
        mirror is disabled or the request failed.
    """
    base_url = current_app.config.get('CLOUD_MIRROR_URL')
    if not base_url:
        return False

    url = f"{base_url.rstrip('/')}/school_data/{name}"
    headers = {}
    token = current_app.config.get('CLOUD_MIRROR_TOKEN')
    if token:
        headers['Authorization'] = f"Bearer {token}"

    try:
        resp = requests.put(
            url,
            json={"items": items},
            headers=headers,
            timeout=current_app.config.get('CLOUD_MIRROR_TIMEOUT', 5),
        )
        resp.raise_for_status()
        return True
    except requests.exceptions.ConnectionError:
        current_app.logger.warning(f"Cloud mirror unreachable at {base_url}; skipped '{name}'")
    except requests.exceptions.Timeout:
        current_app.logger.warning(f"Cloud mirror timed out saving '{name}'")
    except requests.exceptions.RequestException as e:
        current_app.logger.warning(f"Cloud mirror rejected '{name}': {e}")
    return False
