from typing import Callable, Iterable, List, Optional, Sequence, TypeVar, Union

T = TypeVar("T")
Searchable = Union[str, Sequence[str]]


def score(text: str, term: str) -> float:
    """1.0 exact, 0.8 prefix, 0.6 substring, 0 otherwise (case-insensitive)."""
    lower, term = text.lower(), term.lower()
    if lower == term:
        return 1.0
    if lower.startswith(term):
        return 0.8
    if term in lower:
        return 0.6
    return 0.0


def best_score(searchable: Searchable, term: str) -> float:
    fields = [searchable] if isinstance(searchable, str) else searchable
    return max((score(f, term) for f in fields if f), default=0.0)


def filter_by_search(items: Iterable[T], term: Optional[str], key: Callable[[T], Searchable]) -> List[T]:
    items = list(items)
    if not term or not term.strip():
        return items
    term = term.strip()
    scored = [(best_score(key(item), term), item) for item in items]
    # sorted() is stable, so equal scores keep input order
    return [item for s, item in sorted((p for p in scored if p[0] > 0), key=lambda p: -p[0])]
