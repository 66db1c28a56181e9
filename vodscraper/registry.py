"""
Registre des sources : nom -> instance, construit une fois au démarrage
"""

from typing import Any, Dict, Iterator, List, Optional, Type

import structlog

from .anime_sources import AgeSource, YhmcSource
from .base_source import BaseSource

log = structlog.get_logger(__name__)

# Classes disponibles, indexées par nom de source
SOURCE_CLASSES: Dict[str, Type[BaseSource]] = {
    AgeSource.name: AgeSource,
    YhmcSource.name: YhmcSource,
}


class SourceRegistry:
    """Table nom -> source, en lecture seule une fois le démarrage terminé"""

    def __init__(self):
        self._sources: Dict[str, BaseSource] = {}

    def register(self, source: BaseSource) -> None:
        if not source.name:
            raise ValueError(f"{type(source).__name__} has no name")
        if source.name in self._sources:
            log.warning("source_replaced", source=source.name)
        self._sources[source.name] = source

    def get(self, name: str) -> Optional[BaseSource]:
        """Retourne la source ou None si le nom est inconnu"""
        return self._sources.get(name)

    def names(self) -> List[str]:
        return list(self._sources)

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __iter__(self) -> Iterator[BaseSource]:
        return iter(self._sources.values())

    def __len__(self) -> int:
        return len(self._sources)


def build_default_registry(site_configs: Optional[Dict[str, Any]] = None) -> SourceRegistry:
    """
    Instancie toutes les sources activées de la configuration

    Sans configuration, chaque source est créée avec ses valeurs par défaut.
    """
    registry = SourceRegistry()
    if site_configs is None:
        for source_cls in SOURCE_CLASSES.values():
            registry.register(source_cls())
        return registry

    for key, site in site_configs.items():
        if not site.enabled:
            continue
        source_cls = SOURCE_CLASSES.get(key)
        if source_cls is None:
            log.warning("unknown_site_config", site=key)
            continue

        kwargs = {
            "base_url": site.base_url,
            "timeout": site.timeout,
            "cloudflare_protected": site.cloudflare_protected,
            "headers": site.headers,
            "connect_timeout": site.connect_timeout,
        }
        if source_cls is YhmcSource:
            kwargs["decode_prefix_length"] = site.decode_prefix_length
        registry.register(source_cls(**kwargs))

    log.info("registry_ready", sources=registry.names())
    return registry
