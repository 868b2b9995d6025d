from __future__ import annotations

import numpy as np
import qrcode
from PIL import Image
from qrcode.exceptions import DataOverflowError

from ...utils.exceptions import EncodeError
from ...utils.logging import get_logger
from .models import StyleSpec

# Fixed policy: ~30% occlusion tolerance and a one-module quiet zone.
ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_H
QUIET_ZONE_MODULES = 1


class MarkerSynthesizer:
    def __init__(self) -> None:
        self.logger = get_logger(__name__)

    def module_matrix(self, payload: str) -> np.ndarray:
        if not payload:
            raise EncodeError("marker payload must not be empty")
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECTION,
            border=QUIET_ZONE_MODULES,
        )
        try:
            qr.add_data(payload)
            qr.make(fit=True)
        except (DataOverflowError, ValueError) as exc:
            raise EncodeError(
                f"payload of {len(payload)} characters does not fit a QR code at error correction level H"
            ) from exc
        return np.array(qr.get_matrix(), dtype=bool)

    def synthesize(self, payload: str, style: StyleSpec, output_scale: float = 1.0) -> Image.Image:
        """Render `payload` as a square RGB image of `style.size * output_scale` pixels."""
        if not output_scale > 0:
            raise EncodeError(f"output scale must be positive, got {output_scale!r}")
        target = int(round(style.size * output_scale))
        if target < 1:
            raise EncodeError(f"marker size {style.size} at scale {output_scale} is below one pixel")

        modules = self.module_matrix(payload)
        side = modules.shape[0]
        if target < side:
            self.logger.warning(
                "marker smaller than one pixel per module",
                extra={"modules": side, "pixels": target},
            )

        rgb = np.empty((side, side, 3), dtype=np.uint8)
        rgb[modules] = style.color
        rgb[~modules] = style.background_color
        return Image.fromarray(rgb).resize((target, target), Image.Resampling.NEAREST)
