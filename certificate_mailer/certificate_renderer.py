"""
Certificate Rendering Module

This module draws personalized certificates on top of a raster template and
packages each one as a single-page PDF document.

Key Features:
- Template raster drawn as the base layer at its native resolution
- Positioned, individually toggleable text fields (name, event, certificate ID)
- Automatic font down-scaling for long names
- Optional QR code pointing at the verification URL
- Font fallback system for missing fonts

The page is sized to the template's pixel dimensions (1 px = 1 pt), so layout
coordinates measured on the template image can be used as-is.
"""

import logging
import math
import os
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional

# ReportLab imports for PDF generation
from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.colors import Color, HexColor, black, white
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

# pypdf for merging the text layer onto the template layer
from pypdf import PdfReader, PdfWriter

from .config import FieldLayout, LayoutConfig, QrLayout
from .errors import RenderError
from .records import CertificateAssignment
from .templates import TemplateImage

logger = logging.getLogger(__name__)

CUSTOM_FONT_NAME = "CustomFont"
DEFAULT_FONT = "Helvetica-Bold"

# Rough estimate: an average glyph is about 60% as wide as the font size.
AVERAGE_CHAR_WIDTH_RATIO = 0.6

BASE14_FONTS = (
    "Courier", "Courier-Bold", "Courier-Oblique", "Courier-BoldOblique",
    "Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique",
    "Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic",
    "Symbol", "ZapfDingbats",
)

FONT_FALLBACKS = {
    "arial": "Helvetica-Bold",
    "helvetica": "Helvetica-Bold",
    "verdana": "Helvetica-Bold",
    "sans-serif": "Helvetica-Bold",
    "times": "Times-Bold",
    "times new roman": "Times-Bold",
    "georgia": "Times-Bold",
    "serif": "Times-Bold",
    "courier": "Courier-Bold",
    "courier new": "Courier-Bold",
    "monospace": "Courier-Bold",
}


def calculate_font_size(text: str, max_width: Optional[float], base_font_size: int) -> int:
    """
    Calculate a font size that lets ``text`` fit within ``max_width``.

    Args:
        text: Text to draw
        max_width: Maximum width in pixels, or None for no constraint
        base_font_size: Configured font size

    Returns:
        The configured size when the estimate fits, otherwise the size scaled
        down proportionally and floored. Never less than 1.
    """
    if not max_width:
        return max(1, int(base_font_size))

    estimated_width = len(text) * base_font_size * AVERAGE_CHAR_WIDTH_RATIO
    if estimated_width <= max_width:
        return max(1, int(base_font_size))

    scale_factor = max_width / estimated_width
    return max(1, math.floor(base_font_size * scale_factor))


class CertificateRenderer:
    """
    Renders certificate documents.

    The renderer holds no participant state: render() is a function of the
    assignment, the layout, the template and the verification URL base.

    Attributes:
        custom_font_loaded (bool): Whether the TrueType font at font_path was registered
        font_fallbacks (dict): Resolved font per requested font family
    """

    def __init__(self, font_path: Optional[str] = None, name_max_width_ratio: float = 0.7):
        self.name_max_width_ratio = name_max_width_ratio
        self.custom_font_loaded = False
        self.font_fallbacks: Dict[str, str] = {}
        self._load_fonts(font_path)

    def _load_fonts(self, font_path: Optional[str]) -> None:
        """Register the optional custom TrueType font as CustomFont."""
        if not font_path:
            return
        if not Path(font_path).exists():
            logger.info(f"Custom font not found at {font_path}; using built-in fonts")
            return
        try:
            pdfmetrics.registerFont(TTFont(CUSTOM_FONT_NAME, font_path))
            self.custom_font_loaded = True
            logger.info(f"Loaded font: {font_path}")
        except Exception as e:
            logger.warning(f"Failed to load custom font {font_path}, using default: {e}")

    def _get_available_font(self, font_family: str) -> str:
        """
        Get the best available font for a given font family.

        Args:
            font_family: Requested family, e.g. "Arial" or "CustomFont"

        Returns:
            Registered font name (requested, or fallback)
        """
        if font_family in self.font_fallbacks:
            return self.font_fallbacks[font_family]

        requested = (font_family or "").strip()
        if requested == CUSTOM_FONT_NAME and self.custom_font_loaded:
            resolved = CUSTOM_FONT_NAME
        elif requested.lower() in FONT_FALLBACKS:
            resolved = FONT_FALLBACKS[requested.lower()]
        elif requested in pdfmetrics.getRegisteredFontNames() or requested in BASE14_FONTS:
            resolved = requested
        else:
            resolved = CUSTOM_FONT_NAME if self.custom_font_loaded else DEFAULT_FONT
            logger.warning(f"Font '{requested}' is unavailable; using '{resolved}'")

        self.font_fallbacks[font_family] = resolved
        return resolved

    @staticmethod
    def _parse_color(value: str) -> Color:
        try:
            return HexColor(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid color {value!r}; using black")
            return black

    def _draw_centered_text(
        self,
        canvas_obj: canvas.Canvas,
        text: str,
        field: FieldLayout,
        page_height: float,
        max_width: Optional[float] = None,
    ) -> int:
        """
        Draw text centered horizontally and vertically on (field.x, field.y).

        Returns:
            The font size actually used
        """
        font_name = self._get_available_font(field.font_family)
        font_size = calculate_font_size(text, max_width, field.font_size)

        # Layout y grows downwards; the PDF page's y grows upwards.
        center_y = page_height - field.y
        ascent, descent = pdfmetrics.getAscentDescent(font_name, font_size)
        baseline = center_y - (ascent + descent) / 2

        canvas_obj.setFont(font_name, font_size)
        canvas_obj.setFillColor(self._parse_color(field.color))
        canvas_obj.drawCentredString(field.x, baseline, text)
        return font_size

    def _draw_qr_code(self, canvas_obj: canvas.Canvas, url: str, qr: QrLayout, page_height: float) -> None:
        """Draw an opaque QR code whose top-left corner sits at (qr.x, qr.y)."""
        try:
            widget = QrCodeWidget(url)
            x1, y1, x2, y2 = widget.getBounds()
            width, height = x2 - x1, y2 - y1
            drawing = Drawing(qr.size, qr.size, transform=[qr.size / width, 0, 0, qr.size / height, 0, 0])
            drawing.add(widget)

            bottom = page_height - qr.y - qr.size
            canvas_obj.setFillColor(white)
            canvas_obj.rect(qr.x, bottom, qr.size, qr.size, stroke=0, fill=1)
            renderPDF.draw(drawing, canvas_obj, qr.x, bottom)
        except Exception as e:
            logger.warning(f"Failed to generate QR code for {url}: {e}")

    def _render_base_layer(self, template: TemplateImage) -> BytesIO:
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(template.width, template.height))
        c.drawImage(ImageReader(template.image), 0, 0, width=template.width, height=template.height, mask="auto")
        c.showPage()
        c.save()
        buffer.seek(0)
        return buffer

    def _render_text_layer(
        self,
        assignment: CertificateAssignment,
        layout: LayoutConfig,
        template: TemplateImage,
        verification_url: str,
    ) -> BytesIO:
        packet = BytesIO()
        c = canvas.Canvas(packet, pagesize=(template.width, template.height))

        if layout.name.enabled:
            max_width = template.width * self.name_max_width_ratio
            self._draw_centered_text(c, assignment.name, layout.name, template.height, max_width=max_width)

        if layout.event.enabled and assignment.event:
            self._draw_centered_text(c, assignment.event, layout.event, template.height)

        if layout.certificate_id.enabled:
            self._draw_centered_text(c, assignment.certificate_id, layout.certificate_id, template.height)

        if layout.qr.enabled:
            self._draw_qr_code(c, f"{verification_url}{assignment.certificate_id}", layout.qr, template.height)

        c.showPage()
        c.save()
        packet.seek(0)
        return packet

    def render(
        self,
        assignment: CertificateAssignment,
        layout: LayoutConfig,
        template: TemplateImage,
        verification_url: str = "",
    ) -> bytes:
        """
        Generate a single certificate document.

        Args:
            assignment: Participant plus its certificate identifier
            layout: Field positions and toggles
            template: Decoded template raster
            verification_url: Base URL the certificate ID is appended to for the QR code

        Returns:
            PDF document bytes

        Raises:
            RenderError: If the document cannot be produced
        """
        logger.info(f"Generating certificate for {assignment.name} ({assignment.certificate_id})")
        try:
            base_pdf = PdfReader(self._render_base_layer(template))
            text_pdf = PdfReader(self._render_text_layer(assignment, layout, template, verification_url))

            # Merge the text layer onto the template page once the writer owns it
            output_pdf = PdfWriter()
            certificate_page = output_pdf.add_page(base_pdf.pages[0])
            certificate_page.merge_page(text_pdf.pages[0])
            output_pdf.add_metadata({
                "/Title": f"Certificate {assignment.certificate_id}",
                "/Subject": assignment.event or "Certificate of Participation",
            })

            document = BytesIO()
            output_pdf.write(document)
            return document.getvalue()
        except Exception as e:
            logger.error(f"Error generating certificate for {assignment.name}: {e}")
            raise RenderError(f"Failed to render certificate {assignment.certificate_id}: {e}") from e

    @staticmethod
    def save_document(document: bytes, output_dir: str, filename: str) -> str:
        """Write a rendered document and return its absolute path."""
        os.makedirs(output_dir, exist_ok=True)
        output_path = os.path.join(output_dir, filename)
        with open(output_path, "wb") as f:
            f.write(document)
        logger.info(f"Saved certificate: {output_path}")
        return os.path.abspath(output_path)
