"""Store identity resolution.

Observations reference the same real-world store inconsistently: some carry a
stable store id, some only a free-text store name, legacy rows only a source
label. Each reference becomes a provisional key scoped to the capture location,
and keys seen on the same observation are unioned, so a store referenced by id
in one submission and by name in another converges once any observation links
the two.

Two different store ids that share a name at the same location are merged as
well, trading perfect separation for fewer duplicate listings.
"""

from __future__ import annotations

from crowdprice.services.observations import PriceObservation


def build_provisional_keys(
    *,
    store_id: str | None,
    store_name: str | None,
    source: str | None,
    location_suffix: str,
) -> tuple[str | None, str | None]:
    normalized_id = (store_id or "").strip()
    normalized_name = (store_name or "").strip().lower()
    normalized_source = (source or "").strip().lower()

    id_key = f"id:{normalized_id}:{location_suffix}" if normalized_id else None
    if normalized_name:
        name_key: str | None = f"name:{normalized_name}:{location_suffix}"
    elif normalized_source:
        name_key = f"source:{normalized_source}:{location_suffix}"
    else:
        name_key = None
    return id_key, name_key


class StoreIdentityResolver:
    """Union-find over provisional store keys.

    Build one per aggregation call. The representative of every set is the key
    registered first, which keeps labels stable for a given input order while
    membership stays independent of it.
    """

    def __init__(self) -> None:
        self._parent: dict[str, str] = {}
        self._order: dict[str, int] = {}

    def register(self, observation: PriceObservation) -> str:
        id_key, name_key = build_provisional_keys(
            store_id=observation.store_id,
            store_name=observation.store_name,
            source=observation.source,
            location_suffix=observation.location_suffix,
        )
        keys = [key for key in (id_key, name_key) if key]
        if not keys:
            keys = [f"unknown:{observation.location_suffix}"]

        for key in keys:
            self._add(key)
        if len(keys) == 2:
            self.union(keys[0], keys[1])
        return keys[0]

    def find(self, key: str) -> str:
        root = key
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[key] != root:
            self._parent[key], key = root, self._parent[key]
        return root

    def union(self, left: str, right: str) -> str:
        left_root = self.find(left)
        right_root = self.find(right)
        if left_root == right_root:
            return left_root
        # earlier registration wins so labels anchor on the first key seen
        if self._order[left_root] <= self._order[right_root]:
            self._parent[right_root] = left_root
            return left_root
        self._parent[left_root] = right_root
        return right_root

    def canonical_key(self, observation: PriceObservation) -> str:
        return self.find(self.register(observation))

    def _add(self, key: str) -> None:
        if key not in self._parent:
            self._parent[key] = key
            self._order[key] = len(self._order)
