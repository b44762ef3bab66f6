"""Immutable, case-insensitive HTTP headers.

Stores raw byte pairs from the ASGI scope and decodes on access.
"""

from collections.abc import Iterator, Mapping


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive HTTP headers.

    ``__getitem__`` returns the first matching value;
    ``get_list`` returns all of them.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        self._raw = tuple((name.lower(), value) for name, value in raw)

    @classmethod
    def from_dict(cls, headers: Mapping[str, str]) -> "Headers":
        return cls(
            tuple((k.encode("latin-1"), v.encode("latin-1")) for k, v in headers.items())
        )

    def _key(self, key: str) -> bytes:
        return key.lower().encode("latin-1")

    def __getitem__(self, key: str) -> str:
        wanted = self._key(key)
        for name, value in self._raw:
            if name == wanted:
                return value.decode("latin-1")
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        seen: set[bytes] = set()
        for name, _ in self._raw:
            if name not in seen:
                seen.add(name)
                yield name.decode("latin-1")

    def __len__(self) -> int:
        return len({name for name, _ in self._raw})

    def __repr__(self) -> str:
        return f"Headers({dict(self)!r})"

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        wanted = self._key(key)
        return [value.decode("latin-1") for name, value in self._raw if name == wanted]

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """Raw (lowercased) header byte pairs."""
        return self._raw
