from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from pcinventory.schemas.build_dto import BuildDTO, BuildLine


class Selection(BaseModel):
    """An in-progress build: staged lines not yet committed."""
    name: str = ""
    notes: str = ""
    lines: List[BuildLine] = []

    def line_for(self, part_id: str) -> Optional[BuildLine]:
        for line in self.lines:
            if line.part_id == part_id:
                return line
        return None

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0"))


class PartialReconciliationFailure(BaseModel):
    '''
    A per-part step that failed after the build write was already decided.
    Logged, never retried, never rolled back.

    build_id: build being committed / deleted
    part_id: part the failed step touched, if known
    step: decrement_source / spawn_in_build / credit_inventory / release_in_build / discard_in_build / ...
    message: error text
    '''
    build_id: str
    part_id: Optional[str] = None
    step: str
    message: str


class CommitResult(BaseModel):
    build: BuildDTO
    failures: List[PartialReconciliationFailure] = []
    spawned_part_ids: List[str] = []


class ReconciliationReport(BaseModel):
    build_id: str
    return_to_inventory: bool
    returned_quantity: int = 0
    discarded_quantity: int = 0
    created_part_ids: List[str] = []
    failures: List[PartialReconciliationFailure] = []
