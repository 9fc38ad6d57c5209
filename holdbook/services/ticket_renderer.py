import io

import qrcode
from qrcode.image.pil import PilImage

from holdbook.core import ValidationError
from holdbook.domain import Ticket

RENDERABLE_TYPES = {"QR_CODE"}


def render_ticket(ticket: Ticket) -> bytes:
    """PNG image of the ticket code for scanners at the venue"""
    if ticket.ticket_code_type not in RENDERABLE_TYPES:
        raise ValidationError(
            f"Ticket code type {ticket.ticket_code_type} cannot be rendered as an image",
            field="ticketCodeType",
        )
    img = qrcode.make(ticket.code, image_factory=PilImage)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
