"""
View state fed by two independent write paths:

1. subscription deliveries (server truth, replaces everything it covers)
2. optimistic local writes (transient hints until the next delivery)

Last write wins; the subscription is the eventual source of truth.
"""
from typing import Callable, List, Optional

from pcinventory.logger import get_logger
from pcinventory.schemas.build_dto import BuildDTO
from pcinventory.schemas.part_dto import PartDTO

logger = get_logger(__name__)


class InventoryView:
    def __init__(self):
        self.parts: List[PartDTO] = []
        self.builds: List[BuildDTO] = []
        self.last_error: Optional[Exception] = None
        self._unsubscribes: List[Callable[[], None]] = []

    # ======================================================
    # 🔔 Subscription path
    # ======================================================

    def attach(self, parts_collection, builds_collection=None) -> None:
        self.detach()
        self._unsubscribes.append(parts_collection.subscribe(self.on_parts, self.on_error))
        if builds_collection is not None:
            self._unsubscribes.append(builds_collection.subscribe(self.on_builds, self.on_error))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []

    def on_parts(self, items: List[PartDTO]) -> None:
        self.parts = list(items)

    def on_builds(self, items: List[BuildDTO]) -> None:
        self.builds = list(items)

    def on_error(self, error: Exception) -> None:
        logger.error("Subscription error: %s", error)
        self.last_error = error

    # ======================================================
    # ✏️ Optimistic path
    # ======================================================

    def apply_optimistic_build(self, build: BuildDTO) -> None:
        for i, existing in enumerate(self.builds):
            if existing.id == build.id:
                self.builds[i] = build
                return
        self.builds.insert(0, build)

    def remove_optimistic_build(self, build_id: str) -> None:
        self.builds = [b for b in self.builds if b.id != build_id]

    # ======================================================
    # 🔍 Lookups
    # ======================================================

    def find_part(self, part_id: str) -> Optional[PartDTO]:
        for part in self.parts:
            if part.id == part_id:
                return part
        return None

    def find_build(self, build_id: str) -> Optional[BuildDTO]:
        for build in self.builds:
            if build.id == build_id:
                return build
        return None
