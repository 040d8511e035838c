"""
QR Payload Codec
================

Serializes typed loyalty payloads into scannable QR images and back.

Two payload kinds exist, discriminated by ``kind``:

    voucher     {"kind": "voucher", "voucher_id", "points", "merchant_id", "timestamp"}
    redemption  {"kind": "redemption", "customer_id", "merchant_id", "points", "timestamp"}

``timestamp`` is milliseconds since the Unix epoch.

The encoded form is a ``data:image/png;base64,...`` URL. The QR modules
carry the JSON text for camera scanners, and the same text is stored in a
PNG text chunk so the image string can be decoded offline without an
image scanner.

Example:
    Issue and read back a voucher payload::

        from apps.loyalty.services import qr_codec

        payload = qr_codec.voucher_payload(voucher)
        image = qr_codec.encode(payload)

        decoded = qr_codec.decode(image)
        qr_codec.validate(decoded, expected_kind='voucher')

Trust requires both phases: ``is_fresh`` AND ``is_well_formed``.
"""

import base64
import binascii
import json
import logging
import time
import uuid
from dataclasses import dataclass, asdict, fields
from datetime import datetime, timedelta
from io import BytesIO
from typing import ClassVar, Optional, Union

import qrcode
from qrcode.image.pil import PilImage
from PIL import Image, PngImagePlugin
from django.conf import settings

from .exceptions import InvalidQRCodeError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = 'data:image/png;base64,'
PNG_TEXT_KEY = 'loyalty-qr-payload'

DEFAULT_MAX_AGE = timedelta(hours=24)
DEFAULT_CLOCK_SKEW = timedelta(minutes=5)


@dataclass(frozen=True)
class VoucherPayload:
    """Payload printed on an issued voucher."""

    voucher_id: Optional[str] = None
    points: Optional[int] = None
    merchant_id: Optional[str] = None
    timestamp: Optional[int] = None

    kind: ClassVar[str] = 'voucher'
    id_fields: ClassVar[tuple] = ('voucher_id', 'merchant_id')


@dataclass(frozen=True)
class RedemptionPayload:
    """Payload a customer presents to spend points at a merchant."""

    customer_id: Optional[str] = None
    merchant_id: Optional[str] = None
    points: Optional[int] = None
    timestamp: Optional[int] = None

    kind: ClassVar[str] = 'redemption'
    id_fields: ClassVar[tuple] = ('customer_id', 'merchant_id')


QRPayload = Union[VoucherPayload, RedemptionPayload]

PAYLOAD_TYPES = {
    VoucherPayload.kind: VoucherPayload,
    RedemptionPayload.kind: RedemptionPayload,
}


# =============================================================================
# Payload construction
# =============================================================================

def now_millis(now: Optional[datetime] = None) -> int:
    if now is None:
        return int(time.time() * 1000)
    return int(now.timestamp() * 1000)


def voucher_payload(voucher, now: Optional[datetime] = None) -> VoucherPayload:
    """Build a stamped payload for a stored voucher."""
    return VoucherPayload(
        voucher_id=str(voucher.id),
        points=voucher.points_value,
        merchant_id=str(voucher.merchant_id),
        timestamp=now_millis(now),
    )


def redemption_payload(customer_id, merchant_id, points: int,
                       now: Optional[datetime] = None) -> RedemptionPayload:
    """Build a stamped payload for a customer's redemption request."""
    return RedemptionPayload(
        customer_id=str(customer_id),
        merchant_id=str(merchant_id),
        points=points,
        timestamp=now_millis(now),
    )


def to_dict(payload: QRPayload) -> dict:
    return {'kind': payload.kind, **asdict(payload)}


def from_dict(raw) -> Optional[QRPayload]:
    """Build the typed payload for ``raw['kind']``, or None if the kind is unknown."""
    if not isinstance(raw, dict):
        return None
    kind = raw.get('kind')
    if not isinstance(kind, str):
        return None
    payload_type = PAYLOAD_TYPES.get(kind)
    if payload_type is None:
        return None
    return payload_type(**{f.name: raw.get(f.name) for f in fields(payload_type)})


# =============================================================================
# Encoding / decoding
# =============================================================================

def encode(payload: QRPayload) -> str:
    """
    Render a payload as a PNG QR code data URL.

    Uses error correction level M (15% recovery), which keeps the code
    small enough for phone screens while surviving minor glare.
    """
    text = json.dumps(to_dict(payload), separators=(',', ':'))

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=1,
    )
    qr.add_data(text)
    qr.make(fit=True)

    img = qr.make_image(
        image_factory=PilImage,
        fill_color="black",
        back_color="white",
    )

    info = PngImagePlugin.PngInfo()
    info.add_text(PNG_TEXT_KEY, text)

    buffer = BytesIO()
    img.save(buffer, format='PNG', pnginfo=info)

    return DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode('ascii')


def decode(data) -> Optional[QRPayload]:
    """
    Decode a PNG data URL or scanned JSON text into a typed payload.

    Returns None for malformed input instead of raising.
    """
    if not isinstance(data, str):
        return None

    data = data.strip()
    if data.startswith('data:'):
        text = _read_png_text(data)
        if text is None:
            return None
    else:
        text = data

    try:
        raw = json.loads(text)
    except (ValueError, RecursionError):
        return None

    return from_dict(raw)


def _read_png_text(data_url: str) -> Optional[str]:
    header, _, encoded = data_url.partition(',')
    if not header.endswith(';base64'):
        return None

    try:
        raw = base64.b64decode(encoded, validate=True)
        with Image.open(BytesIO(raw)) as image:
            text = image.info.get(PNG_TEXT_KEY)
    except (binascii.Error, ValueError, OSError, Image.DecompressionBombError):
        return None

    return text if isinstance(text, str) else None


# =============================================================================
# Validation
# =============================================================================

def is_fresh(payload, max_age=None, now: Optional[datetime] = None) -> bool:
    """
    Check that the payload was stamped within ``max_age``.

    Args:
        payload: Typed payload
        max_age: ``timedelta`` or milliseconds; defaults to ``settings.QR_MAX_AGE``
        now: Reference time, defaults to the current time

    Payloads stamped further in the future than ``settings.QR_CLOCK_SKEW``
    are rejected too.
    """
    timestamp = getattr(payload, 'timestamp', None)
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        return False

    if max_age is None:
        max_age = getattr(settings, 'QR_MAX_AGE', DEFAULT_MAX_AGE)
    if isinstance(max_age, timedelta):
        max_age_ms = max_age.total_seconds() * 1000
    else:
        max_age_ms = max_age

    skew = getattr(settings, 'QR_CLOCK_SKEW', DEFAULT_CLOCK_SKEW)
    age_ms = now_millis(now) - timestamp

    if age_ms < -skew.total_seconds() * 1000:
        return False
    return age_ms <= max_age_ms


def is_well_formed(payload) -> bool:
    """Check that every field required by the payload's kind is present and valid."""
    if type(payload) not in PAYLOAD_TYPES.values():
        return False

    for name in payload.id_fields:
        if not _is_uuid(getattr(payload, name)):
            return False

    if not _is_int(payload.points) or payload.points <= 0:
        return False

    return _is_int(payload.timestamp)


def validate(payload, expected_kind: Optional[str] = None, max_age=None,
             now: Optional[datetime] = None) -> QRPayload:
    """
    Return the payload if it can be trusted, otherwise raise.

    Raises:
        InvalidQRCodeError: If the payload is missing, malformed, stale,
            or not of ``expected_kind``
    """
    if payload is None:
        raise InvalidQRCodeError("Invalid QR code")

    if not is_well_formed(payload):
        logger.warning("Rejected malformed %s QR payload", getattr(payload, "kind", "unknown"))
        raise InvalidQRCodeError("Invalid QR code")

    if not is_fresh(payload, max_age=max_age, now=now):
        logger.warning("Rejected stale %s QR payload (timestamp=%s)", payload.kind, payload.timestamp)
        raise InvalidQRCodeError("QR code has expired")

    if expected_kind is not None and payload.kind != expected_kind:
        logger.warning("Rejected %s QR payload where %s was expected", payload.kind, expected_kind)
        raise InvalidQRCodeError("Invalid QR code")

    return payload


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_uuid(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True
