"""
Sources pour sites d'anime (AGE, Yhmc)
"""

import re
from types import MappingProxyType
from typing import List, Dict, Optional, Tuple, Any
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup

from .base_source import (
    BaseSource, CatalogItem, DetailBundle, DetailMetadata, Episode, HomeSection,
    Playlist, ResolvedVideo, StreamType, UNKNOWN, home_sections_from_pair, unique_tags,
)
from .labels import LabelRule, apply_rules, apply_text_rules, split_label, split_tags, year_from_date
from .utils import (
    classify_stream_url, decode_line_file, extract_iframe_src, extract_line_list,
    extract_script_var_url, normalize_protocol, play_id_from_url, select_line,
)

log = structlog.get_logger(__name__)

AGE_LABEL_RULES = (
    LabelRule("动画种类", "type"),
    LabelRule("播放状态", "status"),
    LabelRule("首播时间", "year", year_from_date),
    LabelRule("制作公司", "studio"),
    LabelRule("剧情类型", "tags", split_tags),
)

YHMC_DETAIL_RULES = (
    LabelRule("备注", "status"),
    LabelRule("状态", "status"),
    LabelRule("类型", "tags", lambda value: split_tags(value.replace('/', ' '))),
    LabelRule("年份", "year", year_from_date),
)


class AgeSource(BaseSource):
    """Source pour AGE动漫 (agedm)"""

    name = "Age"
    supports_home = True

    def __init__(self, base_url: str = "https://www.agedm.io", timeout: float = 10,
                 cloudflare_protected: bool = False, headers: Optional[Dict[str, str]] = None,
                 connect_timeout: Optional[float] = None):
        super().__init__(base_url, "AGE动漫", timeout, cloudflare_protected, headers, connect_timeout)

    async def scrape_catalog(self, page: int, category: Optional[str] = None,
                             year: Optional[str] = None) -> List[CatalogItem]:
        """Parcourt le catalogue AGE (pas de filtre catégorie/année sur ce site)"""
        if category or year:
            log.debug("catalog_filters_ignored", source=self.name, category=category, year=year)

        url = f"{self.base_url}/catalog/all-all-all-all-all-time-{page}"
        log.info("catalog_fetch", source=self.name, page=page, url=url)
        html = await self.fetch(url)
        if not html:
            return []

        try:
            soup = BeautifulSoup(html, 'lxml')
            items = self.collect_items(soup.select('.cata_video_item'), self._parse_catalog_entry)
        except Exception:
            log.error("catalog_parse_failed", source=self.name, url=url, exc_info=True)
            return []

        log.info("catalog_parsed", source=self.name, page=page, count=len(items))
        return items

    def _parse_catalog_entry(self, element: Any) -> Optional[CatalogItem]:
        link = element.select_one('h5.card-title a')
        if link is None:
            return None
        id_match = re.search(r'/detail/(\d+)', link.get('href', ''))
        if not id_match:
            return None

        description = ""
        texts = []
        for info in element.select('.video_detail_info'):
            if 'desc' in (info.get('class') or []):
                # Le libellé "简介：" est dans un span
                for span in info.find_all('span'):
                    span.decompose()
                description = self.clean_text(info.get_text())
            else:
                texts.append(info.get_text())
        fields = apply_text_rules(texts, AGE_LABEL_RULES)

        return CatalogItem(
            source_id=id_match.group(1),
            title=self.clean_text(link.get_text()),
            cover_url=self.image_url(element.select_one('img.video_thumbs')),
            type=fields.get('type') or "动漫",
            status=fields.get('status') or UNKNOWN,
            description=description,
            year=fields.get('year', ""),
            studio=fields.get('studio', ""),
            tags=fields.get('tags', ()),
            source=self.name,
        )

    async def scrape_detail(self, source_id: str) -> DetailBundle:
        """Récupère les lignes de lecture et les métadonnées"""
        url = f"{self.base_url}/detail/{source_id}"
        log.info("detail_fetch", source=self.name, url=url)
        html = await self.fetch(url)
        if not html:
            return DetailBundle.empty()

        soup = BeautifulSoup(html, 'lxml')
        try:
            metadata = self._parse_detail_metadata(soup)
        except Exception:
            log.error("detail_metadata_failed", source=self.name, url=url, exc_info=True)
            metadata = DetailMetadata()

        try:
            playlists = self._parse_playlists(soup)
        except Exception:
            log.error("detail_playlists_failed", source=self.name, url=url, exc_info=True)
            return DetailBundle.empty(metadata)

        return DetailBundle(playlists=tuple(playlists), metadata=metadata)

    def _parse_playlists(self, soup: BeautifulSoup) -> List[Playlist]:
        playlists = []
        for button in soup.select('.nav-pills button'):
            target = button.get('data-bs-target') or ""
            if not target.startswith('#'):
                continue
            pane = soup.find(id=target[1:])
            if pane is None:
                continue

            episodes = []
            for link in pane.select('ul.video_detail_episode li a'):
                href = link.get('href', '').strip()
                if href:
                    episodes.append(Episode(name=self.clean_text(link.get_text()), url=href))

            if episodes:
                source_name = self.clean_text(button.get_text()).replace('VIP', '').strip()
                playlists.append(Playlist(source_name=source_name, episodes=tuple(episodes)))
        return playlists

    def _parse_detail_metadata(self, soup: BeautifulSoup) -> DetailMetadata:
        pairs = []
        for row in soup.select('.detail_imform_list li'):
            tag = row.select_one('.detail_imform_tag')
            value = row.select_one('.detail_imform_value')
            if tag is not None and value is not None:
                pairs.append((self.clean_text(tag.get_text()), self.clean_text(value.get_text())))
            else:
                pair = split_label(self.clean_text(row.get_text()))
                if pair:
                    pairs.append(pair)
        fields = apply_rules(pairs, AGE_LABEL_RULES)

        desc = soup.select_one('.video_detail_desc')
        description = self.clean_text(desc.get_text()).replace('简介：', '').strip() if desc else ""

        return DetailMetadata(
            year=fields.get('year') or UNKNOWN,
            tags=fields.get('tags', ()),
            status=fields.get('status') or UNKNOWN,
            description=description,
            cover_url=self.image_url(soup.select_one('.video_detail_cover img')),
            category=fields.get('type', ""),
        )

    async def scrape_video(self, play_url: str) -> Optional[ResolvedVideo]:
        """Résout la variable Vurl ou l'iframe du lecteur"""
        target_url = play_url if play_url.startswith('http') else urljoin(f"{self.base_url}/", play_url)
        log.info("video_fetch", source=self.name, url=target_url)
        html = await self.fetch(target_url)
        if not html:
            return None

        try:
            video_url = extract_script_var_url(html, "Vurl") or extract_iframe_src(html)
        except Exception:
            log.error("video_parse_failed", source=self.name, url=target_url, exc_info=True)
            return None

        if not video_url:
            log.warning("video_url_not_found", source=self.name, url=target_url)
            return None

        video_url, native = classify_stream_url(normalize_protocol(video_url))
        stream_type = StreamType.NATIVE if native else StreamType.IFRAME
        log.info("video_resolved", source=self.name, url=target_url, type=stream_type.value)
        return ResolvedVideo(url=video_url, type=stream_type, headers={'Referer': target_url})

    async def scrape_home(self) -> List[HomeSection]:
        """Page d'accueil : recommandés + dernières mises à jour"""
        url = f"{self.base_url}/"
        log.info("home_fetch", source=self.name, url=url)
        html = await self.fetch(url)
        if not html:
            return []

        try:
            soup = BeautifulSoup(html, 'lxml')
            recommended = self.collect_items(soup.select('.recommend_list .video_item'), self._parse_home_entry)
            recent = self.collect_items(soup.select('.update_list .video_item'), self._parse_home_entry)
        except Exception:
            log.error("home_parse_failed", source=self.name, url=url, exc_info=True)
            return []

        return home_sections_from_pair(recommended, recent)

    def _parse_home_entry(self, element: Any) -> Optional[CatalogItem]:
        link = element.select_one('.video_item-title a')
        if link is None:
            return None
        id_match = re.search(r'/detail/(\d+)', link.get('href', ''))
        if not id_match:
            return None
        info = element.select_one('.video_item--info')

        return CatalogItem(
            source_id=id_match.group(1),
            title=self.clean_text(link.get_text()),
            cover_url=self.image_url(element.select_one('.video_item--image img')),
            type="动漫",
            status=self.clean_text(info.get_text()) if info else UNKNOWN,
            source=self.name,
        )


class YhmcSource(BaseSource):
    """Source pour Yhmc (樱花动漫)"""

    name = "Yhmc"
    supports_home = True

    DEFAULT_CATEGORY = '日韩动漫'
    ALL_YEARS_ID = '0'

    category_map = MappingProxyType({
        '日韩动漫': '229',
        '国产动漫': '228',
        '欧美动漫': '231',
        '港台动漫': '230',
        '动画片': '272',
        '电影': '77',
        '电视剧': '78',
        '综艺': '79',
        '短剧': '233',
        '有声动漫': '232',
    })

    # /vod/1/229/0/30/0/0/0/0 -> 2025
    year_map = MappingProxyType({
        '2026': '40',
        '2025': '30',
        '2024': '31',
        '2023': '32',
        '2022': '33',
        '2021': '34',
        '2020': '35',
        '10年代': '36',
        '00年代': '37',
        '老片': '38',
    })

    def __init__(self, base_url: str = "https://www.yhmc.cc", timeout: float = 15,
                 cloudflare_protected: bool = False, headers: Optional[Dict[str, str]] = None,
                 decode_prefix_length: int = 3, connect_timeout: Optional[float] = None):
        super().__init__(base_url, "樱花动漫", timeout, cloudflare_protected, headers, connect_timeout)
        self.decode_prefix_length = decode_prefix_length

    def resolve_category(self, category: Optional[str]) -> Tuple[str, str]:
        """Libellé -> (libellé effectif, ID interne), catégorie par défaut si inconnu"""
        if category and category in self.category_map:
            return category, self.category_map[category]
        if category:
            log.info("unknown_category", source=self.name, category=category, fallback=self.DEFAULT_CATEGORY)
        return self.DEFAULT_CATEGORY, self.category_map[self.DEFAULT_CATEGORY]

    def resolve_year(self, year: Optional[str]) -> Tuple[str, str]:
        """Libellé -> (libellé effectif, ID interne), toutes années si inconnu"""
        if year and year in self.year_map:
            return year, self.year_map[year]
        if year:
            log.info("unknown_year", source=self.name, year=year)
        return "", self.ALL_YEARS_ID

    def catalog_url(self, page: int, category: Optional[str] = None, year: Optional[str] = None) -> str:
        _, cat_id = self.resolve_category(category)
        _, year_id = self.resolve_year(year)
        return f"{self.base_url}/vod/{page}/{cat_id}/0/{year_id}/0/0/0/0"

    async def scrape_catalog(self, page: int, category: Optional[str] = None,
                             year: Optional[str] = None) -> List[CatalogItem]:
        """Parcourt le catalogue, filtré par catégorie et année"""
        cat_name, _ = self.resolve_category(category)
        year_name, _ = self.resolve_year(year)
        url = self.catalog_url(page, category, year)
        log.info("catalog_fetch", source=self.name, page=page, category=cat_name, year=year_name or "all", url=url)

        html = await self.fetch(url)
        if not html:
            return []

        try:
            soup = BeautifulSoup(html, 'lxml')
            items = self.collect_items(
                soup.select('.public-list-box'),
                lambda box: self._parse_list_box(box, cat_name, year=year_name),
            )
        except Exception:
            log.error("catalog_parse_failed", source=self.name, url=url, exc_info=True)
            return []

        log.info("catalog_parsed", source=self.name, page=page, count=len(items))
        return items

    def _parse_list_box(self, box: Any, type_label: str, year: str = "",
                        default_status: str = "") -> Optional[CatalogItem]:
        link = box.select_one('.public-list-exp')
        if link is None:
            return None
        id_match = re.search(r'/v/(.+)', link.get('href', ''))
        if not id_match:
            return None
        source_id = id_match.group(1).strip('/')

        title = box.select_one('.time-title')
        status = box.select_one('.public-list-prb')
        subtitle = box.select_one('.public-list-subtitle')

        return CatalogItem(
            source_id=source_id,
            title=self.clean_text(title.get_text()) if title else "",
            cover_url=self.image_url(box.select_one('img.gen-movie-img')),
            type=type_label,
            status=(self.clean_text(status.get_text()) if status else "") or default_status,
            description=self.clean_text(subtitle.get_text()) if subtitle else "",
            year=year,
            source=self.name,
        )

    async def scrape_detail(self, source_id: str) -> DetailBundle:
        """Récupère les lignes (onglets) et les métadonnées"""
        url = f"{self.base_url}/v/{source_id.strip('/')}"
        log.info("detail_fetch", source=self.name, url=url)
        html = await self.fetch(url)
        if not html:
            return DetailBundle.empty()

        soup = BeautifulSoup(html, 'lxml')
        try:
            metadata = self._parse_detail_metadata(soup)
        except Exception:
            log.error("detail_metadata_failed", source=self.name, url=url, exc_info=True)
            metadata = DetailMetadata()

        try:
            playlists = self._parse_playlists(soup)
        except Exception:
            log.error("detail_playlists_failed", source=self.name, url=url, exc_info=True)
            return DetailBundle.empty(metadata)

        return DetailBundle(playlists=tuple(playlists), metadata=metadata)

    def _parse_detail_metadata(self, soup: BeautifulSoup) -> DetailMetadata:
        rows = [self.clean_text(row.get_text()) for row in soup.select('.slide-info')]
        fields = apply_text_rules(rows, YHMC_DETAIL_RULES)

        year = fields.get('year') or UNKNOWN
        category = ""
        for span in soup.select('.deployment span'):
            text = self.clean_text(span.get_text())
            if re.fullmatch(r'\d{4}', text):
                year = text
            elif 'hl-ma0' in (span.get('class') or []):
                category = text

        desc = soup.select_one('#height_limit')
        return DetailMetadata(
            year=year,
            tags=unique_tags(fields.get('tags', ())),
            status=fields.get('status') or UNKNOWN,
            description=self.clean_text(desc.get_text()) if desc else "",
            cover_url=self.image_url(soup.select_one('.detail-pic img')),
            category=category,
        )

    def _parse_playlists(self, soup: BeautifulSoup) -> List[Playlist]:
        line_names = [self.clean_text(tab.get_text()) for tab in soup.select('.anthology-tab .swiper-slide')]

        playlists = []
        for index, box in enumerate(soup.select('.anthology-list .anthology-list-box')):
            episodes = []
            for link in box.select('ul.playEpisodes li a'):
                href = link.get('href', '').strip()
                if href:
                    episodes.append(Episode(name=self.clean_text(link.get_text()), url=self.absolute_url(href)))
            if not episodes:
                continue

            name = line_names[index] if index < len(line_names) and line_names[index] else f"线路{index + 1}"
            playlists.append(Playlist(source_name=name, episodes=tuple(episodes)))
        return playlists

    async def scrape_video(self, play_url: str) -> Optional[ResolvedVideo]:
        """Décode le champ `file` de la ligne correspondant à l'épisode"""
        target_url = self.absolute_url(play_url)
        log.info("video_fetch", source=self.name, url=target_url)
        html = await self.fetch(target_url)
        if not html:
            return None

        try:
            lines = extract_line_list(html)
            if not lines:
                log.warning("line_list_missing", source=self.name, url=target_url)
                return None

            play_id = play_id_from_url(target_url)
            line = select_line(lines, play_id)
            if line is None or not line.get('file'):
                log.warning("line_without_file", source=self.name, url=target_url)
                return None
            if play_id is None or str(line.get('id', '')) != str(play_id):
                log.info("line_fallback_first", source=self.name, url=target_url, play_id=play_id)

            stream_url = decode_line_file(line['file'], self.decode_prefix_length)
        except Exception:
            log.error("video_parse_failed", source=self.name, url=target_url, exc_info=True)
            return None

        if not stream_url:
            log.warning("line_decode_failed", source=self.name, url=target_url)
            return None

        log.info("video_resolved", source=self.name, url=target_url, type=StreamType.NATIVE.value)
        return ResolvedVideo(
            url=stream_url,
            type=StreamType.NATIVE,
            headers={
                'User-Agent': self.headers['User-Agent'],
                'Origin': self.base_url,
                'Referer': self.base_url,
            },
        )

    async def scrape_home(self) -> List[HomeSection]:
        """Page d'accueil : carrousel puis chaque bloc titré"""
        url = f"{self.base_url}/"
        log.info("home_fetch", source=self.name, url=url)
        html = await self.fetch(url)
        if not html:
            return []

        try:
            soup = BeautifulSoup(html, 'lxml')
            sections = []

            slides = self.collect_items(soup.select('.slide-time-list .swiper-slide'), self._parse_slide)
            if slides:
                sections.append(HomeSection(title="轮播推荐", items=tuple(slides)))

            for block in soup.select('.box-width'):
                heading = block.select_one('.title-h')
                raw_title = self.clean_text(heading.get_text()) if heading else ""
                if not raw_title:
                    continue

                type_label = raw_title.replace("最新", "").replace("热门", "").strip()
                if "正在热映" in raw_title:
                    type_label = "正在热映"

                items = self.collect_items(
                    block.select('.public-list-box'),
                    lambda box: self._parse_list_box(box, type_label, default_status="更新中"),
                )
                if items:
                    sections.append(HomeSection(title=raw_title, items=tuple(items)))
        except Exception:
            log.error("home_parse_failed", source=self.name, url=url, exc_info=True)
            return []

        log.info("home_parsed", source=self.name, sections=len(sections))
        return sections

    def _parse_slide(self, slide: Any) -> Optional[CatalogItem]:
        link = slide.find('a')
        href = link.get('href', '') if link else ""
        id_match = re.search(r'/[vp]/(.+)', href)
        if not id_match:
            return None

        source_id = id_match.group(1).strip('/')
        if '/p/' in href:
            parts = source_id.split('/')
            if len(parts) >= 3:
                source_id = f"{parts[0]}/{parts[1]}"

        cover_url = ""
        background = slide.select_one('.slide-time-img3')
        style = background.get('style', '') if background else ""
        style_match = re.search(r'url\((.*?)\)', style)
        if style_match:
            cover_url = self.absolute_url(style_match.group(1).strip('\'" '))
        if not cover_url:
            cover_url = self.image_url(slide.find('img'), lazy_attrs=())

        title = slide.select_one('.slide-info-title') or slide.select_one('.time-title')
        remarks = slide.select('.slide-info-remarks')

        return CatalogItem(
            source_id=source_id,
            title=self.clean_text(title.get_text()) if title else "",
            cover_url=cover_url,
            type="轮播推荐",
            status=(self.clean_text(remarks[-1].get_text()) if remarks else "") or "热播中",
            source=self.name,
        )
