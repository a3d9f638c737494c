"""
Redis-backed repositories for products, price rules, promotions and carts.

Each entity type is stored as a hash of JSON documents keyed by id, with
secondary index hashes for natural keys (SKU, promotion code, session, user).
Every method resolves its partition through the DataRouter, so the same
repository instance serves all tenants.
"""
from datetime import datetime
from typing import Callable, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from storefront.models import Cart, PriceRule, Product, Promotion
from storefront.redis_client import RedisClient
from storefront.routing import DataRouter

M = TypeVar("M", bound=BaseModel)


class RedisRepository(Generic[M]):
    """Id-keyed JSON documents in one hash per entity type"""

    entity: str = ""
    model: Type[M]

    def __init__(self, router: DataRouter):
        self.router = router

    @property
    def _hash_key(self) -> str:
        return self.entity

    @property
    def _sequence_key(self) -> str:
        return f"seq:{self.entity}"

    def _store(self) -> RedisClient:
        return self.router.current_partition()

    def _load(self, raw: Optional[str]) -> Optional[M]:
        if raw is None:
            return None
        return self.model.model_validate_json(raw)

    def find_by_id(self, entity_id: int) -> Optional[M]:
        return self._load(self._store().hget(self._hash_key, str(entity_id)))

    def find_all(self) -> List[M]:
        documents = [self._load(raw) for raw in self._store().hvals(self._hash_key)]
        return sorted(documents, key=lambda doc: doc.id)

    def find_where(self, predicate: Callable[[M], bool]) -> List[M]:
        return [doc for doc in self.find_all() if predicate(doc)]

    def save(self, document: M) -> M:
        """Persist document, allocating an id for new documents"""
        store = self._store()
        if document.id is None:
            document = document.model_copy(update={"id": store.incr(self._sequence_key)})
        previous = self._load(store.hget(self._hash_key, str(document.id)))
        store.hset(self._hash_key, str(document.id), document.model_dump_json())
        self._update_indexes(store, previous, document)
        return document

    def delete_by_id(self, entity_id: int) -> bool:
        store = self._store()
        previous = self._load(store.hget(self._hash_key, str(entity_id)))
        if previous is None:
            return False
        store.hdel(self._hash_key, str(entity_id))
        self._update_indexes(store, previous, None)
        return True

    def _update_indexes(self, store: RedisClient, previous: Optional[M], current: Optional[M]):
        pass

    def _find_by_index(self, index: str, value: Optional[str]) -> Optional[M]:
        if not value:
            return None
        store = self._store()
        entity_id = store.hget(f"{self.entity}:{index}", value)
        if entity_id is None:
            return None
        return self._load(store.hget(self._hash_key, entity_id))

    def _reindex(
        self,
        store: RedisClient,
        index: str,
        old_value: Optional[str],
        new_value: Optional[str],
        entity_id: Optional[int]
    ):
        index_key = f"{self.entity}:{index}"
        if old_value and old_value != new_value:
            store.hdel(index_key, old_value)
        if new_value:
            store.hset(index_key, new_value, str(entity_id))


class ProductRepository(RedisRepository[Product]):
    entity = "product"
    model = Product

    def find_by_sku(self, sku: str) -> Optional[Product]:
        return self._find_by_index("sku", sku)

    def find_active(self) -> List[Product]:
        return self.find_where(lambda p: p.active)

    def find_by_category(self, category: str) -> List[Product]:
        return self.find_where(lambda p: p.category == category)

    def find_by_brand(self, brand: str) -> List[Product]:
        return self.find_where(lambda p: p.brand == brand)

    def find_in_stock(self) -> List[Product]:
        return self.find_where(lambda p: p.active and p.stock_quantity > 0)

    def search(self, term: str) -> List[Product]:
        """Active products whose name, description or category contain term"""
        needle = term.lower()

        def matches(product: Product) -> bool:
            fields = (product.name, product.description, product.category)
            return any(field and needle in field.lower() for field in fields)

        return self.find_where(lambda p: p.active and matches(p))

    def _update_indexes(self, store, previous, current):
        self._reindex(
            store,
            "sku",
            previous.sku if previous else None,
            current.sku if current else None,
            current.id if current else None
        )


class PriceRuleRepository(RedisRepository[PriceRule]):
    entity = "price"
    model = PriceRule

    def find_by_product(self, product_id: int) -> List[PriceRule]:
        return self.find_where(
            lambda rule: rule.product_id == product_id and rule.active
        )

    def find_by_type(self, price_type: str) -> List[PriceRule]:
        return self.find_where(lambda rule: rule.active and rule.price_type == price_type)


class PromotionRepository(RedisRepository[Promotion]):
    entity = "promotion"
    model = Promotion

    def find_by_code(self, code: str) -> Optional[Promotion]:
        return self._find_by_index("code", code)

    def _update_indexes(self, store, previous, current):
        self._reindex(
            store,
            "code",
            previous.code if previous else None,
            current.code if current else None,
            current.id if current else None
        )


class CartRepository(RedisRepository[Cart]):
    entity = "cart"
    model = Cart

    def find_by_session_id(self, session_id: str) -> Optional[Cart]:
        return self._find_by_index("session", session_id)

    def find_by_user_id(self, user_id: str) -> Optional[Cart]:
        return self._find_by_index("user", user_id)

    def delete_updated_before(self, cutoff: datetime) -> int:
        """Delete carts last modified before cutoff"""
        deleted = 0
        for cart in self.find_where(lambda c: c.updated_at is not None and c.updated_at < cutoff):
            if self.delete_by_id(cart.id):
                deleted += 1
        return deleted

    def _update_indexes(self, store, previous, current):
        entity_id = current.id if current else None
        self._reindex(
            store,
            "session",
            previous.session_id if previous else None,
            current.session_id if current else None,
            entity_id
        )
        self._reindex(
            store,
            "user",
            previous.user_id if previous else None,
            current.user_id if current else None,
            entity_id
        )
