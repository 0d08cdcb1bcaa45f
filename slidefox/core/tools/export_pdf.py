"""Export generated slide images to a PDF document, one page per slide."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

import aiohttp
from PIL import Image, UnidentifiedImageError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

PageMode = Literal["fixed", "native"]

# 11in wide 16:9 page, in points
FIXED_PAGE_WIDTH = 11 * 72
FIXED_PAGE_HEIGHT = FIXED_PAGE_WIDTH / (16 / 9)


class PdfExportError(Exception):
    """Raised when not a single slide could be placed in the document."""


@dataclass
class FetchedImage:
    url: str
    data: bytes
    content_type: str = ""


class ImageFetcher:
    """Fetch slide images over HTTP. Use as an async context manager."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> ImageFetcher:
        self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, url: str) -> FetchedImage | None:
        """Download one image. Non-200 responses yield None."""
        if self._session is None:
            raise RuntimeError("ImageFetcher must be used inside 'async with'")
        async with self._session.get(url) as response:
            if response.status != 200:
                logger.error(f"Failed to fetch slide: {url} ({response.status})")
                return None
            data = await response.read()
            return FetchedImage(url=url, data=data, content_type=response.headers.get("Content-Type", ""))


def detect_format(url: str, content_type: str) -> str | None:
    """Guess PNG or JPEG from the content type, then from the URL path."""
    content_type = content_type.lower()
    path = urlparse(url).path.lower()
    if "png" in content_type:
        return "PNG"
    if "jpeg" in content_type or "jpg" in content_type:
        return "JPEG"
    if path.endswith(".png"):
        return "PNG"
    if path.endswith((".jpg", ".jpeg")):
        return "JPEG"
    return None


def decode_image(fetched: FetchedImage) -> Image.Image:
    """Decode with the detected format first and the other one as fallback."""
    detected = detect_format(fetched.url, fetched.content_type)
    candidates = ["PNG", "JPEG"] if detected != "JPEG" else ["JPEG", "PNG"]

    last_error: Exception | None = None
    for image_format in candidates:
        try:
            image = Image.open(io.BytesIO(fetched.data), formats=[image_format])
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            last_error = e
            continue
        if image.mode not in ("RGB", "RGBA"):
            has_alpha = "A" in image.getbands() or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")
        return image

    raise UnidentifiedImageError(f"Not a PNG or JPEG image: {fetched.url}") from last_error


def draw_page(pdf: canvas.Canvas, image: Image.Image, page_mode: PageMode) -> None:
    width, height = image.size

    if page_mode == "native":
        pdf.setPageSize((width, height))
        pdf.drawImage(ImageReader(image), 0, 0, width=width, height=height, mask="auto")
    else:
        pdf.setPageSize((FIXED_PAGE_WIDTH, FIXED_PAGE_HEIGHT))
        scale = min(FIXED_PAGE_WIDTH / width, FIXED_PAGE_HEIGHT / height)
        draw_width, draw_height = width * scale, height * scale
        pdf.drawImage(
            ImageReader(image),
            (FIXED_PAGE_WIDTH - draw_width) / 2,
            (FIXED_PAGE_HEIGHT - draw_height) / 2,
            width=draw_width,
            height=draw_height,
            mask="auto",
        )

    pdf.showPage()


async def export_pdf(
    slide_urls: list[str],
    fetcher: ImageFetcher | None = None,
    page_mode: PageMode = "fixed",
    title: str = "Presentation",
) -> bytes:
    """Build a PDF with one page per slide image.

    Slides that cannot be fetched or decoded are logged and skipped.

    Raises:
        PdfExportError: If no URLs were given or no slide could be placed
    """
    if not slide_urls:
        raise PdfExportError("No slide URLs provided")

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(FIXED_PAGE_WIDTH, FIXED_PAGE_HEIGHT))
    pdf.setTitle(title)
    pdf.setAuthor("Slidefox")
    pages = 0

    async with fetcher or ImageFetcher() as images:
        for url in slide_urls:
            try:
                fetched = await images.fetch(url)
                if fetched is None:
                    continue
                image = decode_image(fetched)
            except (aiohttp.ClientError, asyncio.TimeoutError, UnidentifiedImageError, OSError) as e:
                logger.error(f"Error processing slide {url}: {e}")
                continue

            draw_page(pdf, image, page_mode)
            pages += 1

    if pages == 0:
        raise PdfExportError("None of the slides could be exported")

    pdf.save()

    logger.info(
        f"📊 PDF EXPORTED:\n"
        f"   📝 Title: '{title}'\n"
        f"   📑 Pages: {pages} of {len(slide_urls)} slides\n"
        f"   📐 Page mode: {page_mode}\n"
    )

    return buffer.getvalue()
