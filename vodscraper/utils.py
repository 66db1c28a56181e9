"""
Utilitaires pour le scraping et le décodage des flux
"""

import asyncio
import base64
import binascii
import json
import re
from typing import Optional, Dict, Any, List, Tuple
from urllib.parse import urlparse, parse_qs, unquote

import aiohttp
import cloudscraper
import requests
import structlog
from bs4 import BeautifulSoup

log = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
DEFAULT_TIMEOUT = 15

MEDIA_EXTENSIONS = ('.m3u8', '.mp4')
# Hôtes CDN qui servent directement le flux (ByteDance, Aliyun)
NATIVE_HOST_MARKERS = ('toutiao', 'tos-', 'aliyun')
NESTED_URL_PARAMS = ('url', 'v')


def get_default_headers(referer: str = "") -> Dict[str, str]:
    """Génère des headers de navigateur"""
    headers = {
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.5",
    }
    if referer:
        headers["Referer"] = referer
    return headers


async def fetch_page(url: str, headers: Optional[Dict[str, str]] = None,
                     timeout: float = DEFAULT_TIMEOUT, cloudflare_fallback: bool = False,
                     connect_timeout: Optional[float] = None) -> Optional[str]:
    """Récupère le contenu d'une page (async avec aiohttp, fallback cloudscraper si demandé)"""
    if headers is None:
        headers = get_default_headers()
    # Délai de connexion borné par le délai total
    if connect_timeout is not None:
        connect_timeout = min(connect_timeout, timeout)
    client_timeout = aiohttp.ClientTimeout(total=timeout, connect=connect_timeout)

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(url, headers=headers, timeout=client_timeout) as response:
                if response.status == 200:
                    return await response.text(errors='replace')
                log.warning("fetch_bad_status", url=url, status=response.status)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.warning("fetch_failed", url=url, error=str(e) or type(e).__name__)

    if cloudflare_fallback:
        return await asyncio.to_thread(bypass_cloudflare, url, headers, timeout)
    return None


def bypass_cloudflare(url: str, headers: Optional[Dict[str, str]] = None,
                      timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
    """Contourne la protection Cloudflare avec cloudscraper"""
    try:
        scraper = cloudscraper.create_scraper()
        response = scraper.get(url, headers=headers or get_default_headers(), timeout=timeout)
        if response.status_code == 200:
            return response.text
        log.warning("cloudflare_bad_status", url=url, status=response.status_code)
        return None
    except (requests.RequestException, cloudscraper.exceptions.CloudflareException) as e:
        log.warning("cloudflare_bypass_failed", url=url, error=str(e))
        return None


# ==================== DÉCODAGE DES FLUX ====================

def normalize_protocol(url: str) -> str:
    """Transforme une URL sans protocole (//host/...) en https"""
    if url.startswith('//'):
        return f"https:{url}"
    return url


def is_direct_media(url: str) -> bool:
    """Extension média (.m3u8, .mp4) dans le chemin de l'URL"""
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return any(ext in path for ext in MEDIA_EXTENSIONS)


def classify_stream_url(url: str) -> Tuple[str, bool]:
    """
    Détermine si une URL est un flux lisible directement

    Returns:
        (url finale, True si native / False si iframe)
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url, False

    location = parsed.netloc + parsed.path
    if is_direct_media(url) or any(marker in location for marker in NATIVE_HOST_MARKERS):
        return url, True

    # Lecteur intermédiaire qui transporte le vrai flux en paramètre
    params = parse_qs(parsed.query)
    for name in NESTED_URL_PARAMS:
        for value in params.get(name, []):
            if is_direct_media(value):
                return normalize_protocol(value), True
    return url, False


def extract_script_var_url(html: str, var_name: str = "Vurl") -> Optional[str]:
    """Extrait et décode une URL assignée à une variable JavaScript (var Vurl = '...')"""
    match = re.search(rf"var\s+{re.escape(var_name)}\s*=\s*['\"](.*?)['\"]", html)
    if not match or not match.group(1):
        return None
    try:
        return unquote(match.group(1), errors='strict')
    except UnicodeDecodeError:
        return None


def extract_iframe_src(html: str) -> Optional[str]:
    """Cherche la source du lecteur embarqué (iframe#iframe_player puis première iframe)"""
    soup = BeautifulSoup(html, 'lxml')
    iframe = soup.find('iframe', id='iframe_player')
    if not iframe or not iframe.get('src'):
        iframe = soup.find('iframe', src=True)
    if iframe:
        return iframe.get('src', '').strip() or None
    return None


def extract_line_list(html: str, var_name: str = "temLineList") -> Optional[List[Dict[str, Any]]]:
    """Extrait le tableau JSON des lignes de lecture embarqué dans un script"""
    match = re.search(rf"var\s+{re.escape(var_name)}\s*=\s*(\[.*?\]);", html, re.S)
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except ValueError:
        return None
    if not isinstance(data, list):
        return None
    return [line for line in data if isinstance(line, dict)]


def play_id_from_url(play_url: str) -> Optional[int]:
    """Extrait l'identifiant numérique du dernier segment de l'URL de lecture"""
    path = urlparse(play_url).path.rstrip('/')
    match = re.search(r'/(\d+)$', path)
    return int(match.group(1)) if match else None


def select_line(lines: List[Dict[str, Any]], play_id: Optional[int]) -> Optional[Dict[str, Any]]:
    """Retourne la ligne correspondant à l'ID, sinon la première"""
    if not lines:
        return None
    if play_id is not None:
        for line in lines:
            if str(line.get('id', '')) == str(play_id):
                return line
    return lines[0]


def decode_line_file(encoded: str, prefix_length: int = 3) -> Optional[str]:
    """
    Décode le champ `file` d'une ligne : préfixe retiré, base64, puis décodage URI

    Returns:
        L'URL du flux, ou None si le décodage échoue
    """
    if not isinstance(encoded, str) or len(encoded) <= prefix_length:
        return None

    # Alphabets standard et URL-safe acceptés
    payload = encoded[prefix_length:].strip().replace('-', '+').replace('_', '/')
    payload += '=' * (-len(payload) % 4)
    try:
        raw = base64.b64decode(payload)
    except (binascii.Error, ValueError):
        return None

    try:
        url = unquote(raw.decode('latin-1'), errors='strict').strip()
    except UnicodeDecodeError:
        return None

    if not url.startswith(('http://', 'https://', '//')):
        return None
    return normalize_protocol(url)
