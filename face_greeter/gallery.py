from typing import Dict, Iterator, List, Optional

from .face_types import Identity, IdentityStore
from .logger import setup_logger


class Gallery:
    """In-memory snapshot of enrolled identities, in store order."""

    def __init__(self, identities: Optional[List[Identity]] = None):
        self._identities: Dict[str, Identity] = {}
        self.logger = setup_logger(self.__class__.__name__)
        self.replace(identities or [])

    def replace(self, identities: List[Identity]) -> None:
        snapshot: Dict[str, Identity] = {}
        for identity in identities:
            if identity.identity_id in snapshot:
                self.logger.warning("Duplicate identity id %s ignored", identity.identity_id)
                continue
            snapshot[identity.identity_id] = identity
        self._identities = snapshot

    def load(self, store: IdentityStore) -> int:
        self.replace(store.get_all())
        self.logger.info("Gallery loaded with %d identities", len(self._identities))
        return len(self._identities)

    def refresh_if_changed(self, store: IdentityStore) -> bool:
        stored = store.count()
        if stored == len(self._identities):
            return False
        self.logger.info("Enrolled count changed (%d -> %d), reloading gallery", len(self._identities), stored)
        self.load(store)
        return True

    def get(self, identity_id: str) -> Optional[Identity]:
        return self._identities.get(identity_id)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._identities

    def __iter__(self) -> Iterator[Identity]:
        return iter(self._identities.values())

    def __len__(self) -> int:
        return len(self._identities)
