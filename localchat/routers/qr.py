"""QR code pointing phones on the LAN at the chat client."""
from __future__ import annotations

import base64
import io

import qrcode
import qrcode.image.svg
from fastapi import APIRouter, HTTPException

from ..logging_config import get_logger
from ..schemas import QRCodeResponse
from ..state import core

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["qr"])


def qr_data_url(text: str) -> str:
    """Encode *text* as an SVG QR code wrapped in a ``data:`` URL."""
    image = qrcode.make(text, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


@router.get("/qr", response_model=QRCodeResponse)
async def get_qr_code():
    url = core.settings.client_url()
    try:
        return QRCodeResponse(qr_code=qr_data_url(url), url=url)
    except (ValueError, OSError) as exc:
        logger.error("QR generation failed for %s: %s", url, exc)
        raise HTTPException(status_code=500, detail="Failed to generate QR code")
