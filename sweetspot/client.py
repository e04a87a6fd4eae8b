# sweetspot/client.py
"""
Async client for the marketplace API with a small query cache.

Reads are cached per (path, params). Every mutation drops the cached keys of
the resources it changes before returning, so the next read after a
successful add/update/remove always goes back to the server.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

CacheKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    out = {}
    for k, v in (params or {}).items():
        if v is None:
            continue
        if isinstance(v, (list, tuple, set)):
            v = ",".join(str(x) for x in v)
        elif isinstance(v, bool):
            v = "true" if v else "false"
        out[k] = str(v)
    return out


class MarketplaceClient:
    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 15):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url, headers=headers, transport=transport, timeout=timeout,
        )
        self._cache: Dict[CacheKey, Any] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    # ------------------------------------------------------------ plumbing

    @staticmethod
    def _raise_for(r: httpx.Response):
        if r.is_success:
            return
        try:
            body = r.json()
        except ValueError:
            body = r.text
        detail = body.get("detail") if isinstance(body, dict) else body
        raise ApiError(r.status_code, detail)

    async def query(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        clean = _params(params)
        key = (path, tuple(sorted(clean.items())))
        if key in self._cache:
            return self._cache[key]
        r = await self._http.get(path, params=clean)
        self._raise_for(r)
        data = r.json()
        self._cache[key] = data
        return data

    def invalidate(self, *prefixes: str) -> None:
        for key in list(self._cache):
            path = key[0]
            if any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes):
                del self._cache[key]

    def is_cached(self, path: str, params: Optional[Dict[str, Any]] = None) -> bool:
        return (path, tuple(sorted(_params(params).items()))) in self._cache

    async def mutate(self, method: str, path: str, invalidates: Iterable[str] = (), **kwargs) -> Any:
        r = await self._http.request(method, path, **kwargs)
        self._raise_for(r)
        self.invalidate(*invalidates)
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    # ------------------------------------------------------------ reads

    async def me(self) -> Dict:
        return await self.query("/api/auth/user")

    async def categories(self) -> List[Dict]:
        return await self.query("/api/categories")

    async def products(self, category_id: Optional[int] = None, vendor_id: Optional[str] = None,
                       search: Optional[str] = None, tags: Optional[List[str]] = None,
                       dietary: Optional[List[str]] = None, is_active: Optional[bool] = None) -> List[Dict]:
        return await self.query("/api/products", {
            "categoryId": category_id, "vendorId": vendor_id, "search": search,
            "tags": tags, "dietary": dietary, "isActive": is_active,
        })

    async def product(self, product_id: int) -> Dict:
        return await self.query(f"/api/products/{product_id}")

    async def vendor_products(self) -> List[Dict]:
        return await self.query("/api/vendor/products")

    async def vendor_stats(self) -> Dict:
        return await self.query("/api/vendor/stats")

    async def cart(self) -> List[Dict]:
        return await self.query("/api/cart")

    async def favorites(self) -> List[Dict]:
        return await self.query("/api/favorites")

    async def is_favorite(self, product_id: int) -> bool:
        data = await self.query(f"/api/favorites/{product_id}/check")
        return data["isFavorite"]

    async def orders(self, status: Optional[str] = None) -> List[Dict]:
        return await self.query("/api/orders", {"status": status})

    async def order(self, order_id: int) -> Dict:
        return await self.query(f"/api/orders/{order_id}")

    async def subscriptions(self) -> List[Dict]:
        return await self.query("/api/subscriptions")

    async def product_reviews(self, product_id: int) -> List[Dict]:
        return await self.query(f"/api/products/{product_id}/reviews")

    # ------------------------------------------------------------ cart

    async def add_to_cart(self, product_id: int, quantity: int = 1,
                          special_requests: Optional[str] = None) -> Dict:
        body = {"productId": product_id, "quantity": quantity, "specialRequests": special_requests}
        return await self.mutate("POST", "/api/cart", invalidates=["/api/cart"], json=body)

    async def update_cart_item(self, cart_item_id: int, quantity: int) -> Dict:
        return await self.mutate("PUT", f"/api/cart/{cart_item_id}", invalidates=["/api/cart"],
                                 json={"quantity": quantity})

    async def remove_from_cart(self, cart_item_id: int) -> None:
        await self.mutate("DELETE", f"/api/cart/{cart_item_id}", invalidates=["/api/cart"])

    async def clear_cart(self) -> None:
        await self.mutate("DELETE", "/api/cart", invalidates=["/api/cart"])

    @staticmethod
    def cart_total(items: List[Dict]) -> Decimal:
        return sum(
            (Decimal(str((i.get("product") or {}).get("price") or 0)) * i["quantity"] for i in items),
            Decimal("0"),
        )

    @staticmethod
    def cart_count(items: List[Dict]) -> int:
        return sum(i["quantity"] for i in items)

    # ------------------------------------------------------------ favorites

    async def add_favorite(self, product_id: int) -> Dict:
        return await self.mutate("POST", "/api/favorites", invalidates=["/api/favorites"],
                                 json={"productId": product_id})

    async def remove_favorite(self, product_id: int) -> None:
        await self.mutate("DELETE", f"/api/favorites/{product_id}", invalidates=["/api/favorites"])

    # ------------------------------------------------------------ products

    async def create_product(self, fields: Dict[str, Any],
                             image: Optional[Tuple[str, bytes, str]] = None) -> Dict:
        """``fields`` are the camelCase form fields; ``image`` is (filename, bytes, content type)."""
        files = {"image": image} if image else None
        return await self.mutate("POST", "/api/products",
                                 invalidates=["/api/products", "/api/vendor"],
                                 data=_params(fields), files=files)

    async def update_product(self, product_id: int, patch: Dict[str, Any],
                             image: Optional[Tuple[str, bytes, str]] = None) -> Dict:
        # a new image has to go up as multipart, like the create form
        body = {"data": _params(patch), "files": {"image": image}} if image else {"json": patch}
        return await self.mutate("PUT", f"/api/products/{product_id}",
                                 invalidates=["/api/products", "/api/vendor", "/api/cart", "/api/favorites"],
                                 **body)

    async def delete_product(self, product_id: int) -> None:
        await self.mutate("DELETE", f"/api/products/{product_id}",
                          invalidates=["/api/products", "/api/vendor", "/api/cart", "/api/favorites"])

    # ------------------------------------------------------------ orders

    async def place_order(self, order_data: Dict[str, Any], order_items: List[Dict[str, Any]]) -> Dict:
        return await self.mutate("POST", "/api/orders",
                                 invalidates=["/api/orders", "/api/cart", "/api/vendor"],
                                 json={"orderData": order_data, "orderItems": order_items})

    async def update_order_status(self, order_id: int, status: str) -> Dict:
        return await self.mutate("PUT", f"/api/orders/{order_id}/status",
                                 invalidates=["/api/orders"], json={"status": status})

    # ------------------------------------------------------------ subscriptions

    async def create_subscription(self, data: Dict[str, Any]) -> Dict:
        return await self.mutate("POST", "/api/subscriptions",
                                 invalidates=["/api/subscriptions"], json=data)

    async def update_subscription(self, subscription_id: int, patch: Dict[str, Any]) -> Dict:
        return await self.mutate("PUT", f"/api/subscriptions/{subscription_id}",
                                 invalidates=["/api/subscriptions"], json=patch)

    async def cancel_subscription(self, subscription_id: int) -> None:
        await self.mutate("DELETE", f"/api/subscriptions/{subscription_id}",
                          invalidates=["/api/subscriptions"])

    # ------------------------------------------------------------ reviews

    async def create_review(self, product_id: int, rating: int, comment: Optional[str] = None,
                            order_id: Optional[int] = None) -> Dict:
        body = {"rating": rating, "comment": comment, "orderId": order_id}
        return await self.mutate("POST", f"/api/products/{product_id}/reviews",
                                 invalidates=[f"/api/products/{product_id}", "/api/vendor"],
                                 json=body)
