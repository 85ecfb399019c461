import logging
import re
from typing import List

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class QRExtractor:
    @staticmethod
    def extract(data: bytes) -> List[str]:
        """
        Detect and decode any QR codes in an image (PNG/JPG) and return the
        decoded strings. Returns an empty list if nothing is found.
        """
        try:
            img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        except cv2.error as e:
            logger.error(f"QR Extraction Error: {e}")
            return []
        if img is None:
            logger.warning("Failed to load image with OpenCV")
            return []

        try:
            detector = cv2.QRCodeDetector()
            retval, decoded_info, _points, _straight = detector.detectAndDecodeMulti(img)
        except cv2.error as e:
            logger.error(f"QR Extraction Error: {e}")
            return []

        if not retval:
            logger.debug("No QR codes found.")
            return []

        values = [QRExtractor.clean_url(s) for s in decoded_info if s]
        logger.info(f"Decoded QR values: {values}")
        return values

    @staticmethod
    def clean_url(raw: str) -> str:
        s = "".join(ch for ch in raw if ch.isprintable()).strip()
        return s.replace(" ", "")

    @staticmethod
    def filter_urls(qr_values: List[str]) -> List[str]:
        """
        Filter QR values to return only those that look like URLs.
        """
        cleaned = [QRExtractor.clean_url(v) for v in qr_values]
        return [v for v in cleaned if re.match(r'(?:https?://|www\.)', v)]
