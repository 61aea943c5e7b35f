from typing import Hashable, Iterable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")
H = TypeVar("H", bound=Hashable)


def chunks(seq: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield successive `size`-length slices of `seq` (last may be shorter)."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for i in range(0, len(seq), size):
        yield list(seq[i:i + size])


def unique_keep_order(seq: Iterable[H]) -> List[H]:
    seen = set()
    out = []
    for x in seq:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out
