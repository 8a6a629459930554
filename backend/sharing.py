"""
Share links for public events

A share link points at the event page on the frontend; the QR code encodes
the same link and is returned as a PNG data URL ready for an <img> tag.
"""

import base64
import io

import qrcode

from models import Event


def share_link(event: Event, frontend_url: str) -> str:
    return f"{frontend_url.rstrip('/')}/events/{event.id}"


def qr_code_data_url(text: str) -> str:
    image = qrcode.make(text)
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


def build_share_info(event: Event, frontend_url: str) -> dict:
    link = share_link(event, frontend_url)
    return {
        'shareable_link': link,
        'qr_code': qr_code_data_url(link),
        'event': {
            'id': event.id,
            'name': event.name,
            'description': event.description,
        },
    }
