"""Bilibili favorites API client.

Read-only access to the logged-in user's favorite folders. Every payload is
checked against the shape the backup depends on; anything unexpected raises
SchemaError instead of being read as an empty result, because an empty result
would make a full sync drop the folder's backup.
"""

import logging
import time
from typing import Any

import requests

from fav_backup.core.models import (
    Collection, CollectionList, IdentityError, IdList, Item, ItemPage,
    ItemStatus, Owner, PAGE_SIZE, SchemaError, TransportError,
)

logger = logging.getLogger(__name__)

API_LIST_MEDIA = "https://api.bilibili.com/x/v3/fav/resource/list"
API_GET_MYINFO = "https://api.bilibili.com/x/space/v2/myinfo"
API_GET_FAVLIST = "https://api.bilibili.com/x/v3/fav/folder/created/list-all"
API_GET_FAV_IDS = "https://api.bilibili.com/x/v3/fav/resource/ids"
API_GET_MEDIA_INFO = "https://api.bilibili.com/x/web-interface/view"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

# Detail codes that mean "gone", not "failed"
REMOVED_CODES = {
    -404: ItemStatus.REMOVED_UNSPECIFIED,
    62002: ItemStatus.REMOVED_BY_OWNER,
    62012: ItemStatus.RESTRICTED,
}


class BilibiliClient:
    def __init__(self, sessdata: str, timeout: float = 10.0, request_interval: float = 0.1,
                 session: requests.Session | None = None):
        self._session = session or requests.Session()
        self._session.headers.update({
            "user-agent": USER_AGENT,
            "referer": "https://www.bilibili.com/",
        })
        self._session.cookies.set("SESSDATA", sessdata, domain=".bilibili.com")
        self._timeout = timeout
        self._interval = request_interval
        logger.info("Bilibili client initialized")

    def _request(self, url: str, params: dict | None = None) -> dict:
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        finally:
            if self._interval:
                time.sleep(self._interval)

        if response.status_code != 200:
            logger.error(f"HTTP {response.status_code} from {url}: {response.text[:200]}")
            raise TransportError(f"HTTP {response.status_code} from {url}")

        try:
            payload = response.json()
        except ValueError as e:
            raise SchemaError(f"Non-JSON response from {url}") from e
        if not isinstance(payload, dict) or "code" not in payload:
            raise SchemaError(f"Response from {url} has no status code")
        return payload

    def _data(self, payload: dict, name: str) -> Any:
        code = payload.get("code")
        if code != 0:
            raise TransportError(f"{name} failed with code {code}: {payload.get('message', '')}")
        return payload.get("data")

    def resolve_account_id(self) -> str:
        try:
            payload = self._request(API_GET_MYINFO)
        except SchemaError as e:
            raise IdentityError(f"Account lookup failed: {e}") from e
        if payload.get("code") != 0:
            raise IdentityError(f"Account lookup failed with code {payload.get('code')}: "
                                f"{payload.get('message', '')}")

        profile = (payload.get("data") or {}).get("profile") or {}
        mid = profile.get("mid")
        if mid is None:
            raise IdentityError("Account id missing from profile response")
        return str(mid)

    def list_collections(self, account_id: str) -> CollectionList:
        payload = self._request(API_GET_FAVLIST, {"up_mid": account_id})
        data = self._data(payload, "list collections")

        if not isinstance(data, dict) or not isinstance(data.get("list"), list):
            raise SchemaError("Collection list response missing 'list'")
        count = data.get("count")
        if not isinstance(count, int) or count <= 0:
            raise SchemaError(f"Collection list response has invalid count: {count!r}")

        collections = []
        for fav in data["list"]:
            try:
                collections.append(Collection(
                    id=str(fav["id"]),
                    owner_id=fav.get("mid"),
                    title=fav.get("title", ""),
                    declared_count=int(fav.get("media_count", 0)),
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise SchemaError(f"Malformed collection entry: {e}") from e

        if len(collections) != count:
            raise SchemaError(f"Expected {count} collections, got {len(collections)}")

        logger.info(f"Retrieved {len(collections)} collections")
        return CollectionList(collections=collections, declared_count=count)

    def list_items_page(self, collection_id: str, page: int, page_size: int = PAGE_SIZE) -> ItemPage:
        payload = self._request(API_LIST_MEDIA, {
            "media_id": collection_id,
            "pn": page,
            "ps": page_size,
            "platform": "web",
        })
        data = self._data(payload, f"list collection {collection_id} page {page}")

        # medias is null for an empty folder, but the key itself must be there
        if not isinstance(data, dict):
            raise SchemaError("Page response missing 'data'")
        if not isinstance(data.get("info"), dict):
            raise SchemaError("Page response missing 'info'")
        if "medias" not in data:
            raise SchemaError("Page response missing 'medias'")
        if not isinstance(data.get("has_more"), bool):
            raise SchemaError("Page response missing 'has_more'")

        medias = data["medias"] or []
        if not isinstance(medias, list):
            raise SchemaError("Page response 'medias' is not a list")

        try:
            declared = int(data["info"].get("media_count", 0))
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Invalid media_count: {e}") from e

        return ItemPage(
            items=[self._extract_item(media) for media in medias],
            has_more=data["has_more"],
            declared_count=declared,
        )

    def _extract_item(self, media: Any) -> Item:
        if not isinstance(media, dict) or not media.get("bvid"):
            raise SchemaError(f"Malformed item entry: {media!r:.100}")
        # A missing attr must not read as 0 (active): that would overwrite a
        # backed-up title with the placeholder shown for removed items
        attr = media.get("attr")
        if not isinstance(attr, int) or isinstance(attr, bool):
            raise SchemaError(f"Item {media['bvid']} has invalid attr: {attr!r}")
        if not isinstance(media.get("title"), str):
            raise SchemaError(f"Item {media['bvid']} missing 'title'")
        upper = media.get("upper") or {}
        return Item(
            id=media["bvid"],
            numeric_id=media.get("id"),
            title=media["title"],
            status=ItemStatus.from_attr(attr),
            owner=Owner(upper.get("mid"), upper.get("name")),
        )

    def list_item_ids(self, collection_id: str) -> IdList:
        payload = self._request(API_GET_FAV_IDS, {"media_id": collection_id, "platform": "web"})
        data = self._data(payload, f"list ids of collection {collection_id}")

        if not isinstance(data, list):
            raise SchemaError("Id list response is not a list")

        ids = []
        for entry in data:
            bvid = entry.get("bvid") if isinstance(entry, dict) else None
            if not bvid:
                raise SchemaError(f"Malformed id entry: {entry!r:.100}")
            ids.append(bvid)

        return IdList(ids=ids, declared_count=len(ids))

    def get_item_detail(self, item_id: str) -> Item:
        payload = self._request(API_GET_MEDIA_INFO, {"bvid": item_id})

        code = payload.get("code")
        if code in REMOVED_CODES:
            logger.debug(f"{item_id} unavailable (code {code})")
            return Item.removed(item_id, REMOVED_CODES[code])
        data = self._data(payload, f"detail of {item_id}")

        if not isinstance(data, dict) or not isinstance(data.get("owner"), dict):
            raise SchemaError(f"Detail response for {item_id} missing 'owner'")
        if not isinstance(data.get("title"), str):
            raise SchemaError(f"Detail response for {item_id} missing 'title'")

        return Item(
            id=data.get("bvid", item_id),
            numeric_id=data.get("aid"),
            title=data["title"],
            status=ItemStatus.ACTIVE,
            owner=Owner(data["owner"].get("mid"), data["owner"].get("name")),
        )
