import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

UNSPLASH_BASE = "https://api.unsplash.com"


async def fetch_crop_image(
    client: httpx.AsyncClient, crop: str, access_key: str = "", base_url: str = UNSPLASH_BASE
) -> Optional[str]:
    """Return one representative image URL for a crop, or None.

    Best effort: a missing key, a failed request or an empty result all
    resolve to None rather than raising.
    """
    if not access_key:
        logger.debug("[imagery] UNSPLASH_ACCESS_KEY not set; skipping image for %s", crop)
        return None

    params = {"query": crop, "client_id": access_key, "per_page": 1}
    try:
        resp = await client.get(f"{base_url.rstrip('/')}/search/photos", params=params)
        resp.raise_for_status()
        body = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("[imagery] image search failed for %s: %s", crop, e)
        return None

    results = body.get("results") if isinstance(body, dict) else None
    if not results:
        return None
    return (results[0].get("urls") or {}).get("small")
