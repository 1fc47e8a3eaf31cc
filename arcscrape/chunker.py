from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union

CHUNK_SIZE = 200
ID_FIELD = "OBJECTID"

ObjectId = Union[int, str]


def build_where_clause(ids: Sequence[ObjectId], field: str = ID_FIELD) -> str:
    """Render an `<field> in (id1,id2,...)` predicate, ids in given order."""
    return f"{field} in ({','.join(str(i) for i in ids)})"


@dataclass(frozen=True)
class IdBatch:
    index: int
    ids: Tuple[ObjectId, ...]

    @property
    def where_clause(self) -> str:
        return build_where_clause(self.ids)

    def __len__(self) -> int:
        return len(self.ids)


def chunk_ids(ids: Iterable[ObjectId], chunk_size: int = CHUNK_SIZE) -> List[IdBatch]:
    """
    Partition an ordered ID sequence into batches of at most chunk_size.

    Order is preserved and nothing is deduplicated or validated; the last
    batch carries the remainder. An empty sequence yields no batches.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    batches: List[IdBatch] = []
    current: List[ObjectId] = []
    for object_id in ids:
        current.append(object_id)
        if len(current) == chunk_size:
            batches.append(IdBatch(index=len(batches), ids=tuple(current)))
            current = []
    if current:
        batches.append(IdBatch(index=len(batches), ids=tuple(current)))
    return batches
