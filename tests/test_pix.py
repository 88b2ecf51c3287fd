"""Tests for PIX keys, payloads and QR rendering."""

import base64
from decimal import Decimal

import qrcode

from storefront.services.pix import decode_pix_code, generate_pix_code, generate_pix_key, render_qr_code


def test_pix_key_format():
    key = generate_pix_key()

    assert key.startswith("DISCBOT")
    assert len(key) == len("DISCBOT") + 16
    assert generate_pix_key() != key


def test_pix_code_payload(settings):
    payment_id = "0b6f3c2e-8d4a-4c61-9a1e-5f7d2b9c0e11"
    name = "Valorant Immortal account with every battle pass skin"

    payload = decode_pix_code(generate_pix_code(payment_id, Decimal("80"), name, settings))

    assert payload == {
        "keyType": settings.PIX_KEY_TYPE,
        "keyValue": settings.PIX_KEY_VALUE,
        "name": settings.PIX_MERCHANT_NAME,
        "city": settings.PIX_MERCHANT_CITY,
        "txId": payment_id[:25],
        "amount": "80.00",
        "description": f"Purchase: {name[:30]}",
    }


def test_qr_code_is_png_data_url(settings):
    url = render_qr_code(generate_pix_code("abc", Decimal("10.5"), "Test", settings), settings)

    assert url.startswith("data:image/png;base64,")
    png = base64.b64decode(url.split(",", 1)[1])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_qr_failure_falls_back_to_placeholder(settings, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("no imaging backend")

    monkeypatch.setattr(qrcode, "QRCode", broken)

    assert render_qr_code("payload", settings) == settings.QR_PLACEHOLDER_URL


def test_payment_keeps_placeholder_when_qr_fails(payments, make_product, settings, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("no imaging backend")

    monkeypatch.setattr(qrcode, "QRCode", broken)

    payment = payments.create_payment("700000000000000001", "Buyer", make_product().id).value

    assert payment.pix_qr_code == settings.QR_PLACEHOLDER_URL
    assert payment.pix_code
