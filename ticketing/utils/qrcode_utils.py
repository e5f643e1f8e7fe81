import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_H

PNG_DATA_URL_PREFIX = "data:image/png;base64,"

def _png_bytes(data: str, box_size: int, border: int) -> bytes:
    code = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=box_size, border=border)
    code.add_data(data)
    code.make(fit=True)
    out = BytesIO()
    code.make_image(fill_color="black", back_color="white").save(out, format="PNG")
    return out.getvalue()

def generate_qr_code(data: str, box_size: int = 10, border: int = 2) -> str:
    """QR code du billet (correction H), renvoyé en data URL PNG prête à stocker dans registrations.qr_code."""
    return PNG_DATA_URL_PREFIX + base64.b64encode(_png_bytes(data, box_size, border)).decode("ascii")
