"""
Base Source Class - Modèle canonique et interface commune pour toutes les sources
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Any, Tuple, Iterable, Callable, ClassVar, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from urllib.parse import urljoin

import structlog

from .utils import DEFAULT_USER_AGENT, fetch_page

log = structlog.get_logger(__name__)

UNKNOWN = "未知"
RECOMMENDED_SECTION_TITLE = "推荐"
RECENT_SECTION_TITLE = "最近更新"


class StreamType(Enum):
    NATIVE = "native"
    IFRAME = "iframe"


def unique_tags(tags: Iterable[str]) -> Tuple[str, ...]:
    """Dédoublonne les tags en conservant l'ordre d'apparition"""
    seen = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen)


@dataclass(frozen=True)
class CatalogItem:
    """Représente un titre découvert sur une page catalogue"""
    source_id: str
    title: str
    cover_url: str
    type: str = ""
    status: str = ""
    description: str = ""
    rating: float = 0
    year: str = ""
    studio: str = ""
    tags: Tuple[str, ...] = ()
    source: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        """Clé composée (source, source_id) pour un upsert idempotent"""
        return (self.source, self.source_id)

    @property
    def is_usable(self) -> bool:
        return bool(self.source_id and self.title and self.cover_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "source_id": self.source_id,
            "title": self.title,
            "cover_url": self.cover_url,
            "type": self.type,
            "status": self.status,
            "description": self.description,
            "rating": self.rating,
            "year": self.year,
            "studio": self.studio,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class Episode:
    """Représente un épisode (lien vers la page de lecture, pas le flux)"""
    name: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url}


@dataclass(frozen=True)
class Playlist:
    """Représente une ligne (miroir) et ses épisodes"""
    source_name: str
    episodes: Tuple[Episode, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_name": self.source_name,
            "episodes": [e.to_dict() for e in self.episodes],
        }


@dataclass(frozen=True)
class DetailMetadata:
    """Métadonnées d'une page détail, toujours complètes"""
    year: str = UNKNOWN
    tags: Tuple[str, ...] = ()
    status: str = UNKNOWN
    description: str = ""
    cover_url: str = ""
    category: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "tags": list(self.tags),
            "status": self.status,
            "description": self.description,
            "cover_url": self.cover_url,
            "category": self.category,
        }


@dataclass(frozen=True)
class DetailBundle:
    """Résultat complet d'une page détail"""
    playlists: Tuple[Playlist, ...] = ()
    metadata: DetailMetadata = field(default_factory=DetailMetadata)

    @classmethod
    def empty(cls, metadata: Optional[DetailMetadata] = None) -> "DetailBundle":
        return cls(playlists=(), metadata=metadata or DetailMetadata())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "playlists": [p.to_dict() for p in self.playlists],
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class ResolvedVideo:
    """Représente un flux vidéo résolu"""
    url: str
    type: StreamType
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "type": self.type.value,
            "headers": dict(self.headers),
        }


@dataclass(frozen=True)
class HomeSection:
    """Représente un bloc de la page d'accueil"""
    title: str
    items: Tuple[CatalogItem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "items": [i.to_dict() for i in self.items],
        }


def home_sections_from_pair(recommended: List[CatalogItem], recent: List[CatalogItem]) -> List[HomeSection]:
    """Convertit le format fixe (recommandés / récents) en liste de sections"""
    return [
        HomeSection(title=RECOMMENDED_SECTION_TITLE, items=tuple(recommended)),
        HomeSection(title=RECENT_SECTION_TITLE, items=tuple(recent)),
    ]


class BaseSource(ABC):
    """Classe de base pour toutes les sources"""

    name: str = ""
    supports_home: bool = False

    # Tables statiques libellé -> identifiant interne du site (lecture seule)
    category_map: ClassVar[Mapping[str, str]] = MappingProxyType({})
    year_map: ClassVar[Mapping[str, str]] = MappingProxyType({})

    def __init__(
        self,
        base_url: str,
        site_name: str,
        timeout: float = 15,
        cloudflare_protected: bool = False,
        headers: Optional[Dict[str, str]] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.site_name = site_name
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.cloudflare_protected = cloudflare_protected
        self.headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Referer": f"{self.base_url}/",
        }
        if headers:
            self.headers.update(headers)

    @abstractmethod
    async def scrape_catalog(self, page: int, category: Optional[str] = None,
                             year: Optional[str] = None) -> List[CatalogItem]:
        """
        Parcourt une page du catalogue

        Args:
            page: Numéro de page (commence à 1)
            category: Libellé lisible de la catégorie (optionnel)
            year: Libellé lisible de l'année (optionnel)

        Returns:
            Liste des titres, vide en cas d'échec
        """
        pass

    @abstractmethod
    async def scrape_detail(self, source_id: str) -> DetailBundle:
        """
        Récupère les lignes de lecture et les métadonnées d'un titre

        Args:
            source_id: Identifiant du titre sur le site d'origine

        Returns:
            DetailBundle, vide en cas d'échec
        """
        pass

    @abstractmethod
    async def scrape_video(self, play_url: str) -> Optional[ResolvedVideo]:
        """
        Résout l'adresse réelle du flux d'un épisode

        Args:
            play_url: URL de la page de lecture fournie par la page détail

        Returns:
            ResolvedVideo ou None si la résolution échoue
        """
        pass

    async def scrape_home(self) -> List[HomeSection]:
        """Récupère les sections de la page d'accueil (si supporté)"""
        return []

    @property
    def categories(self) -> List[str]:
        return list(self.category_map)

    @property
    def years(self) -> List[str]:
        return list(self.year_map)

    async def fetch(self, url: str) -> Optional[str]:
        """Récupère une page avec les en-têtes et le délai de la source"""
        return await fetch_page(
            url,
            headers=self.headers,
            timeout=self.timeout,
            connect_timeout=self.connect_timeout,
            cloudflare_fallback=self.cloudflare_protected,
        )

    def collect_items(self, elements: Iterable[Any],
                      parse_entry: Callable[[Any], Optional[CatalogItem]]) -> List[CatalogItem]:
        """Parse chaque entrée indépendamment ; une entrée invalide est ignorée"""
        items = []
        for element in elements:
            try:
                item = parse_entry(element)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                log.debug("entry_skipped", source=self.name, error=str(e))
                continue
            if item is None or not item.is_usable:
                continue
            items.append(item)
        return items

    def image_url(self, img: Any, lazy_attrs: Tuple[str, ...] = ('data-original', 'data-src')) -> str:
        """URL d'une image, l'attribut de chargement différé est prioritaire sur src"""
        if img is None:
            return ""
        for attr in lazy_attrs + ('src',):
            value = img.get(attr)
            if value and value.strip():
                return self.absolute_url(value.strip())
        return ""

    def clean_text(self, text: str) -> str:
        """Nettoie le texte extrait"""
        if not text:
            return ""
        return ' '.join(text.replace('\n', ' ').replace('\t', ' ').split())

    def absolute_url(self, url: str) -> str:
        """Rend une URL absolue (protocole relatif -> https, relatif -> base)"""
        if not url:
            return ""
        if url.startswith('//'):
            return f"https:{url}"
        if url.startswith('http'):
            return url
        return urljoin(f"{self.base_url}/", url)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} base_url={self.base_url!r}>"
