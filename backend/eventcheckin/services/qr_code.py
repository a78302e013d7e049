import io
import logging

import qrcode
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

def render_qr_png(payload: str, box_size: int = 10, border: int = 4) -> bytes:
    """Render ``payload`` as a black-on-white QR code PNG"""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    logger.debug(f"Rendered QR code for '{payload}' ({buf.tell()} bytes)")
    return buf.getvalue()
