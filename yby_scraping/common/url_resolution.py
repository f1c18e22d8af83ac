"""
Resolução de URLs de lotes.

Scrapers entregam hrefs como aparecem no HTML (relativos ou absolutos);
a normalização usa estas funções para gerar URLs absolutas e estáveis.
NUNCA construa URLs por concatenação de strings em outros módulos.

Uso:
    from yby_scraping.common.url_resolution import resolve_absolute_url

    resolve_absolute_url("https://www.sodresantoro.com.br", "/veiculos/lote/123")
    # "https://www.sodresantoro.com.br/veiculos/lote/123"
"""

import logging
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)


def normalize_base_url(raw: Optional[str]) -> Optional[str]:
    """
    Normaliza URL base adicionando https:// se necessário.

    Exemplos:
        >>> normalize_base_url("www.example.com")
        "https://www.example.com"
        >>> normalize_base_url("")
        None
    """
    if not raw:
        return None

    url = str(raw).strip()
    if not url:
        return None

    url = url.rstrip("/")

    if url.startswith("//"):
        url = f"https:{url}"
    elif not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return url


def resolve_absolute_url(base: Optional[str], href: Optional[str]) -> Optional[str]:
    """
    Resolve href relativo para URL absoluta usando urljoin.

    Exemplos:
        >>> resolve_absolute_url("https://example.com/page", "/lote/123")
        "https://example.com/lote/123"
        >>> resolve_absolute_url("https://example.com", "https://cdn.example.com/a.jpg")
        "https://cdn.example.com/a.jpg"
    """
    if not href:
        return None

    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "#")):
        return None

    if href.startswith("//"):
        href = f"https:{href}"

    base_url = normalize_base_url(base) if base else None
    absolute = urljoin(f"{base_url}/", href) if base_url else href

    parsed = urlparse(absolute)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return absolute

    logger.debug("URL não resolvida: base=%s href=%s", base, href)
    return None


def strip_tracking(url: Optional[str]) -> Optional[str]:
    """Remove query string e fragmento (ex: parâmetros de tracking)."""
    if not url:
        return None
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))
