"""QR code labels for sample identifiers."""

import base64
import io

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H
from qrcode.exceptions import DataOverflowError

from errors import EncodingError

LABEL_WIDTH = 300


def encode_label(identifier: str) -> bytes:
    """Render a sample identifier as a fixed-width PNG QR code."""
    if not identifier:
        raise EncodingError("Cannot encode an empty identifier")

    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_H,
        box_size=10,
        border=2,
    )
    qr.add_data(identifier)
    try:
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as e:
        raise EncodingError(
            f"Identifier too long for a QR code: {e}",
            context={"length": len(identifier)},
        ) from e

    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    img = img.resize((LABEL_WIDTH, LABEL_WIDTH), Image.NEAREST)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
