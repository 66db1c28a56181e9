"""Tests for the Yhmc source (category/year tables, detail tabs, line decoding, home)."""

from __future__ import annotations

import base64
import json
from urllib.parse import quote
from unittest.mock import AsyncMock

import pytest

from vodscraper import StreamType, UNKNOWN, YhmcSource

BASE = "https://www.yhmc.cc"
STREAM_URL = "https://vip.example-cdn.com/20250101/abc/index.m3u8?sign=x%20y"


def _encode(url: str, prefix: str = "a1b") -> str:
    return prefix + base64.b64encode(quote(url, safe="").encode()).decode()


def _list_box(href: str, cover: str = "//img.example.com/c.jpg", title: str = "标题",
              status: str = "更新至12集") -> str:
    img = f'<img class="gen-movie-img" src="/static/loading.gif" data-src="{cover}">' if cover else ""
    return f"""
    <div class="public-list-box">
      <a class="public-list-exp" href="{href}">
        {img}
        <span class="public-list-prb">{status}</span>
      </a>
      <div class="public-list-button">
        <a class="time-title" href="{href}">{title}</a>
        <div class="public-list-subtitle">副标题</div>
      </div>
    </div>
    """


_CATALOG_PAGE = (
    "<html><body>"
    + _list_box("/v/61234/", title="葬送的芙莉莲")
    + _list_box("/v/61235", cover="/upload/vod/61235.jpg", title="药屋少女")
    + _list_box("/other/99", title="没有ID")
    + _list_box("/v/61236", cover="", title="没有封面")
    + "</body></html>"
)

_DETAIL_PAGE = """
<html><body>
  <div class="detail-pic"><img data-src="//img.example.com/detail.jpg" src="/loading.gif"></div>
  <div class="deployment">
    <span class="hl-ma0">日韩动漫</span>
    <span>2023</span>
    <span>日本</span>
  </div>
  <div class="slide-info">备注 : 更新至28集</div>
  <div class="slide-info">类型 : 冒险 / 奇幻</div>
  <div id="height_limit">勇者一行人击败魔王之后的故事。</div>
  <div class="anthology-tab">
    <a class="swiper-slide">量子线路</a>
    <a class="swiper-slide">非凡线路</a>
  </div>
  <div class="anthology-list">
    <div class="anthology-list-box">
      <ul class="playEpisodes">
        <li><a href="/p/61234/1/22247079">第01集</a></li>
        <li><a href="https://www.yhmc.cc/p/61234/1/22247080">第02集</a></li>
        <li><a>无链接</a></li>
      </ul>
    </div>
    <div class="anthology-list-box">
      <ul class="playEpisodes"></ul>
    </div>
  </div>
</body></html>
"""

_LINES = [
    {"id": 22247079, "file": _encode(STREAM_URL)},
    {"id": 22247080, "file": _encode("https://vip.example-cdn.com/ep2/index.m3u8")},
]

_PLAY_PAGE = f"<script>var temLineList = {json.dumps(_LINES)};</script>"

_HOME_PAGE = f"""
<html><body>
  <div class="slide-time-list">
    <div class="swiper-slide">
      <a href="/v/70001"></a>
      <div class="slide-time-img3" style="background-image: url('//img.example.com/slide1.jpg')"></div>
      <div class="slide-info-title">轮播一</div>
      <span class="slide-info-remarks">2025</span>
      <span class="slide-info-remarks">更新至3集</span>
    </div>
    <div class="swiper-slide">
      <a href="/p/70002/1/555"></a>
      <img src="https://img.example.com/slide2.jpg">
      <div class="time-title">轮播二</div>
    </div>
  </div>
  <div class="box-width">
    <h4 class="title-h">最新日韩动漫</h4>
    {_list_box("/v/80001", title="新番一", status="")}
  </div>
  <div class="box-width">
    <h4 class="title-h">正在热映 · 电影</h4>
    {_list_box("/v/80002", title="电影一")}
  </div>
  <div class="box-width">
    <h4 class="title-h">空板块</h4>
  </div>
  <div class="box-width">
    {_list_box("/v/80003", title="无标题板块")}
  </div>
</body></html>
"""


@pytest.fixture()
def source() -> YhmcSource:
    return YhmcSource()


class TestCatalogUrl:
    def test_known_labels(self, source: YhmcSource) -> None:
        assert source.catalog_url(2, "国产动漫", "2025") == f"{BASE}/vod/2/228/0/30/0/0/0/0"

    def test_decade_label(self, source: YhmcSource) -> None:
        assert source.catalog_url(1, "电影", "10年代") == f"{BASE}/vod/1/77/0/36/0/0/0/0"

    def test_defaults(self, source: YhmcSource) -> None:
        assert source.catalog_url(1) == f"{BASE}/vod/1/229/0/0/0/0/0/0"

    def test_unknown_labels_fall_back(self, source: YhmcSource) -> None:
        assert source.catalog_url(4, "火星动漫", "1888") == f"{BASE}/vod/4/229/0/0/0/0/0/0"
        assert source.resolve_category("火星动漫") == ("日韩动漫", "229")
        assert source.resolve_year("1888") == ("", "0")

    def test_labels_exposed(self, source: YhmcSource) -> None:
        assert "日韩动漫" in source.categories
        assert "老片" in source.years

    def test_tables_read_only(self, source: YhmcSource) -> None:
        with pytest.raises(TypeError):
            source.category_map["新分类"] = "999"
        assert "新分类" not in source.categories


class TestCatalog:
    @pytest.mark.asyncio
    async def test_items(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _CATALOG_PAGE

        items = await source.scrape_catalog(1, category="日韩动漫", year="2023")

        assert fetch_mock.await_args.args[0] == f"{BASE}/vod/1/229/0/32/0/0/0/0"
        assert [i.source_id for i in items] == ["61234", "61235"]
        first, second = items
        assert first.title == "葬送的芙莉莲"
        assert first.cover_url == "https://img.example.com/c.jpg"
        assert second.cover_url == f"{BASE}/upload/vod/61235.jpg"
        assert first.status == "更新至12集"
        assert first.description == "副标题"
        assert first.type == "日韩动漫"
        assert first.year == "2023"
        assert first.key == ("Yhmc", "61234")

    @pytest.mark.asyncio
    async def test_unknown_labels_do_not_raise(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _CATALOG_PAGE

        items = await source.scrape_catalog(1, category="???", year="???")

        assert fetch_mock.await_args.args[0] == f"{BASE}/vod/1/229/0/0/0/0/0/0"
        assert all(i.type == "日韩动漫" and i.year == "" for i in items)

    @pytest.mark.asyncio
    async def test_every_item_usable(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _CATALOG_PAGE

        for category in source.categories:
            items = await source.scrape_catalog(1, category=category)
            assert items
            assert all(i.source_id and i.title and i.cover_url for i in items)

    @pytest.mark.asyncio
    async def test_idempotent(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _CATALOG_PAGE

        assert await source.scrape_catalog(1) == await source.scrape_catalog(1)

    @pytest.mark.asyncio
    async def test_empty_page(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = "<html><body><p>没有找到</p></body></html>"

        assert await source.scrape_catalog(99) == []


class TestDetail:
    @pytest.mark.asyncio
    async def test_empty_line_dropped(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _DETAIL_PAGE

        bundle = await source.scrape_detail("61234")

        assert fetch_mock.await_args.args[0] == f"{BASE}/v/61234"
        assert len(bundle.playlists) == 1
        playlist = bundle.playlists[0]
        assert playlist.source_name == "量子线路"
        assert [(e.name, e.url) for e in playlist.episodes] == [
            ("第01集", f"{BASE}/p/61234/1/22247079"),
            ("第02集", f"{BASE}/p/61234/1/22247080"),
        ]

    @pytest.mark.asyncio
    async def test_metadata(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _DETAIL_PAGE

        metadata = (await source.scrape_detail("61234")).metadata

        assert metadata.year == "2023"
        assert metadata.category == "日韩动漫"
        assert metadata.status == "更新至28集"
        assert metadata.tags == ("冒险", "奇幻")
        assert metadata.description == "勇者一行人击败魔王之后的故事。"
        assert metadata.cover_url == "https://img.example.com/detail.jpg"

    @pytest.mark.asyncio
    async def test_default_line_name(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = """
        <div class="anthology-list">
          <div class="anthology-list-box"><ul class="playEpisodes"><li><a href="/p/1/1/1">HD</a></li></ul></div>
        </div>
        """

        bundle = await source.scrape_detail("1")

        assert [p.source_name for p in bundle.playlists] == ["线路1"]
        assert bundle.metadata.year == UNKNOWN
        assert bundle.metadata.status == UNKNOWN

    @pytest.mark.asyncio
    async def test_fetch_failure(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        bundle = await source.scrape_detail("61234")

        assert bundle.playlists == ()
        assert bundle.metadata.year == UNKNOWN
        assert bundle.metadata.tags == ()


class TestVideo:
    @pytest.mark.asyncio
    async def test_matching_line_decoded(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _PLAY_PAGE

        video = await source.scrape_video(f"{BASE}/p/61234/1/22247079")

        assert video is not None
        assert video.url == STREAM_URL
        assert video.type is StreamType.NATIVE
        assert video.headers == {
            "User-Agent": source.headers["User-Agent"],
            "Origin": BASE,
            "Referer": BASE,
        }

    @pytest.mark.asyncio
    async def test_second_line_selected_by_id(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _PLAY_PAGE

        video = await source.scrape_video("/p/61234/1/22247080")

        assert fetch_mock.await_args.args[0] == f"{BASE}/p/61234/1/22247080"
        assert video is not None
        assert video.url == "https://vip.example-cdn.com/ep2/index.m3u8"

    @pytest.mark.asyncio
    async def test_unknown_id_falls_back_to_first(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _PLAY_PAGE

        video = await source.scrape_video(f"{BASE}/p/61234/1/11111111")

        assert video is not None
        assert video.url == STREAM_URL
        assert video.type is StreamType.NATIVE

    @pytest.mark.asyncio
    async def test_missing_line_list(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = "<html><script>var player = {};</script></html>"

        assert await source.scrape_video(f"{BASE}/p/61234/1/22247079") is None

    @pytest.mark.asyncio
    async def test_undecodable_file(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        lines = [{"id": 1, "file": "a1b" + base64.b64encode(b"not a url").decode()}]
        fetch_mock.return_value = f"<script>var temLineList = {json.dumps(lines)};</script>"

        assert await source.scrape_video(f"{BASE}/p/61234/1/1") is None

    @pytest.mark.asyncio
    async def test_deeply_nested_line_list(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = "<script>var temLineList = " + "[" * 100000 + "]" * 100000 + ";</script>"

        assert await source.scrape_video(f"{BASE}/p/61234/1/1") is None

    @pytest.mark.asyncio
    async def test_non_string_file_field(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        lines = [{"id": 1, "file": {"nested": True}}]
        fetch_mock.return_value = f"<script>var temLineList = {json.dumps(lines)};</script>"

        assert await source.scrape_video(f"{BASE}/p/61234/1/1") is None

    @pytest.mark.asyncio
    async def test_configurable_prefix_length(self, fetch_mock: AsyncMock) -> None:
        source = YhmcSource(decode_prefix_length=5)
        lines = [{"id": 1, "file": _encode(STREAM_URL, prefix="zzzzz")}]
        fetch_mock.return_value = f"<script>var temLineList = {json.dumps(lines)};</script>"

        video = await source.scrape_video(f"{BASE}/p/61234/1/1")

        assert video is not None
        assert video.url == STREAM_URL

    @pytest.mark.asyncio
    async def test_fetch_failure(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        assert await source.scrape_video(f"{BASE}/p/61234/1/22247079") is None


class TestHome:
    @pytest.mark.asyncio
    async def test_sections_in_page_order(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _HOME_PAGE

        sections = await source.scrape_home()

        assert [s.title for s in sections] == ["轮播推荐", "最新日韩动漫", "正在热映 · 电影"]

    @pytest.mark.asyncio
    async def test_slider_items(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _HOME_PAGE

        slider = (await source.scrape_home())[0]

        first, second = slider.items
        assert first.source_id == "70001"
        assert first.cover_url == "https://img.example.com/slide1.jpg"
        assert first.title == "轮播一"
        assert first.status == "更新至3集"
        assert second.source_id == "70002/1"
        assert second.cover_url == "https://img.example.com/slide2.jpg"
        assert second.status == "热播中"

    @pytest.mark.asyncio
    async def test_section_types(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        fetch_mock.return_value = _HOME_PAGE

        sections = await source.scrape_home()

        latest = sections[1].items[0]
        assert latest.type == "日韩动漫"
        assert latest.status == "更新中"
        assert sections[2].items[0].type == "正在热映"

    @pytest.mark.asyncio
    async def test_fetch_failure(self, source: YhmcSource, fetch_mock: AsyncMock) -> None:
        assert await source.scrape_home() == []
