"""SSCC parcel label payload.

The pipeline only produces the printer-control text (ZPL) and the human
readable line; turning it into an image/PDF is up to the label printer or an
external rendering service.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from edi_outbound.models import Order
from edi_outbound.services.sscc import normalize_sscc


@dataclass(frozen=True)
class LabelDescription:
    container_id: str
    zpl: str
    human_readable: str
    order_ref: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def human_readable_sscc(sscc: str) -> str:
    return f"(00) {normalize_sscc(sscc)}"


def build_sscc_zpl(sscc: str) -> str:
    """4x6in label at 203dpi: AI text line plus GS1-128 barcode (``>;`` = FNC1 + code C)."""
    normalized = normalize_sscc(sscc)
    return "\n".join(
        [
            "^XA",
            "^PW812",
            "^LL1218",
            f"^FO40,40^A0N,36,36^FD(00) {normalized}^FS",
            f"^FO40,100^BY2,3,120^BCN,120,Y,N,N^FD>;00{normalized}^FS",
            "^XZ",
        ]
    )


def build_label(sscc: str, order: Order | None = None) -> LabelDescription:
    return LabelDescription(
        container_id=normalize_sscc(sscc),
        zpl=build_sscc_zpl(sscc),
        human_readable=human_readable_sscc(sscc),
        order_ref=order.order_ref if order is not None else None,
    )
