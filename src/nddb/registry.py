"""Named registry of collections."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

from nddb.collection import Collection
from nddb.options import CollectionOptions

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """Holds collections by name, with optional aliases.

    Pass one registry to every component that needs to share collections
    instead of keeping them in module globals.

    Example:
        >>> registry = CollectionRegistry()
        >>> codes = registry.create("codes", [{"id": "a1"}])
        >>> registry.alias("auth", "codes")
        True
        >>> registry.get("auth") is codes
        True
    """

    def __init__(
        self,
        factory: Callable[..., Collection] = Collection,
        options: CollectionOptions | Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            factory: Used to create new collections.
            options: Default options for collections created without their own.
        """
        self.factory = factory
        self.options = options
        self._collections: dict[str, Collection] = {}
        self._aliases: dict[str, str] = {}

    def _resolve(self, name: str) -> str:
        return self._aliases.get(name, name)

    def create(
        self,
        name: str,
        items: Iterable[Any] | None = None,
        options: CollectionOptions | Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> Collection:
        """Create a collection and register it under name.

        Extra keyword arguments are passed to the factory.

        Raises:
            ValueError: If name is empty or already registered.
        """
        if not name:
            raise ValueError("Collection name must be a non-empty string")
        if name in self:
            raise ValueError(f"Collection '{name}' already exists")
        collection = self.factory(items, options if options is not None else self.options, **kwargs)
        self._collections[name] = collection
        logger.debug(f"Created collection '{name}' with {len(collection)} items")
        return collection

    def add(self, name: str, collection: Collection) -> None:
        """Register an existing collection under name, replacing any previous one."""
        self._aliases.pop(name, None)
        self._collections[name] = collection

    def get(self, name: str) -> Collection | None:
        """Return the collection registered under name or alias, or None."""
        return self._collections.get(self._resolve(name))

    def alias(self, alias: str, name: str) -> bool:
        """Make alias refer to the collection registered under name.

        Returns False if there is no such collection or alias is already
        a collection name.
        """
        target = self._resolve(name)
        if target not in self._collections:
            logger.error(f"Cannot alias '{alias}': no collection named '{name}'")
            return False
        if alias in self._collections:
            logger.error(f"Cannot alias '{alias}': a collection with that name exists")
            return False
        self._aliases[alias] = target
        return True

    def remove(self, name: str) -> Collection | None:
        """Unregister a collection and every alias pointing to it."""
        if name in self._aliases and name not in self._collections:
            # Removing an alias only drops the alias
            del self._aliases[name]
            return None
        collection = self._collections.pop(name, None)
        if collection is not None:
            self._aliases = {a: target for a, target in self._aliases.items() if target != name}
        return collection

    def names(self) -> list[str]:
        """Return the registered collection names (aliases excluded)."""
        return list(self._collections)

    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def __contains__(self, name: object) -> bool:
        return name in self._collections or name in self._aliases

    def __iter__(self) -> Iterator[str]:
        return iter(self._collections)

    def __len__(self) -> int:
        return len(self._collections)

    def __repr__(self) -> str:
        return f"CollectionRegistry({', '.join(self._collections)})"
