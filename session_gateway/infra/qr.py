"""Terminal rendering of pairing codes."""

import io

import qrcode


def render_ascii_qr(data: str) -> str:
    """Render a pairing code as an ASCII QR code for the console."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)

    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()
