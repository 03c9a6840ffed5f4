"""Provider registry: loads providers and indexes them by name."""

from __future__ import annotations

import importlib
import inspect
import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

from .errors import MorriganConfigError, MorriganProviderLoadError
from .provider import ProviderEntry, ProviderHook, resolve_handlers, resolve_hooks

if TYPE_CHECKING:
    from .provider import CoreEnv

_LOGGER = logging.getLogger(__name__)

ProviderSource = str | Any


async def invoke(func: Any, *args: Any) -> Any:
    """Call a handler or hook, awaiting the result when it is a coroutine."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def import_provider(reference: str) -> Any:
    """Import a provider from ``"package.module"`` or ``"package.module:attr"``.

    A module exposing a ``create_provider`` factory yields the object that
    factory returns; otherwise the module itself is the provider.

    Raises:
        MorriganProviderLoadError: If the import or instantiation fails
    """
    module_name, _, attribute = reference.partition(":")
    try:
        module = importlib.import_module(module_name)
    except Exception as err:
        raise MorriganProviderLoadError(
            reference, f"Failed to import provider module '{module_name}': {err}"
        ) from err

    try:
        if attribute:
            target = getattr(module, attribute)
            return target() if inspect.isclass(target) else target
        factory = getattr(module, "create_provider", None)
        if callable(factory):
            return factory()
    except Exception as err:
        raise MorriganProviderLoadError(
            reference, f"Failed to instantiate provider '{reference}': {err}"
        ) from err
    return module


class ProviderRegistry:
    """Registry of loaded providers keyed by name.

    Enumeration follows registration order. Re-registering a name replaces the
    previous entry in place.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ProviderEntry] = {}

    def load(self, source: ProviderSource) -> ProviderEntry | None:
        """Load and register one provider.

        Args:
            source: Import reference string or an instantiated provider

        Returns:
            The registered entry, or None if the provider was skipped
        """
        if isinstance(source, str):
            _LOGGER.info("Loading '%s'...", source)
            try:
                provider = import_provider(source)
            except MorriganProviderLoadError as err:
                _LOGGER.error("Failed to read provider module '%s': %s", source, err)
                return None
            declared = getattr(provider, "name", None)
            name = declared if isinstance(declared, str) and declared else source
        else:
            provider = source
            name = getattr(provider, "name", None)
            if not isinstance(name, str) or not name:
                _LOGGER.error(
                    "Skipping pre-loaded provider %r: no usable 'name'", provider
                )
                return None

        return self.register(name, provider)

    def load_all(self, sources: Iterable[ProviderSource]) -> None:
        for source in sources:
            self.load(source)

    def register(self, name: str, provider: Any) -> ProviderEntry:
        """Register a provider under ``name``, resolving its capabilities."""
        if name in self._entries:
            _LOGGER.debug("Provider '%s' replaces an earlier registration", name)
        entry = ProviderEntry(
            name=name,
            provider=provider,
            version=str(getattr(provider, "version", "")),
            hooks=resolve_hooks(provider),
            handlers=resolve_handlers(provider),
        )
        self._entries[name] = entry
        _LOGGER.info("Registered provider '%s' (version %s)", name, entry.version)
        return entry

    async def setup(self, core_env: CoreEnv) -> None:
        """Run each provider's setup hook once.

        Failures are isolated per provider, except configuration errors, which
        abort startup.
        """
        for entry in self.with_hook(ProviderHook.SETUP):
            try:
                await invoke(entry.hook(ProviderHook.SETUP), core_env)
            except MorriganConfigError:
                raise
            except Exception:
                _LOGGER.exception("Setup of provider '%s' failed", entry.name)

    def get(self, name: str) -> Any | None:
        """Return the provider object registered as ``name``."""
        entry = self._entries.get(name)
        return entry.provider if entry is not None else None

    def entry(self, name: str) -> ProviderEntry | None:
        return self._entries.get(name)

    def with_hook(self, hook: ProviderHook) -> list[ProviderEntry]:
        """Snapshot of the entries implementing ``hook``, in registry order."""
        return [entry for entry in self._entries.values() if entry.supports(hook)]

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[ProviderEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)
