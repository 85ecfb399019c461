import io
import json
import re
import logging
from typing import List

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(r'\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b')
VERIFY_URL_PATTERN = re.compile(r'/verify/([A-Za-z0-9\-_]{6,64})')


class TextExtractor:
    @staticmethod
    def clean_text(s: str) -> str:
        return "".join(ch for ch in s if ch.isprintable() or ch == "\n").strip()

    @staticmethod
    def clean_url(raw: str) -> str:
        cleaned = TextExtractor.clean_text(raw)
        return cleaned.replace(" ", "").replace("\n", "")

    @staticmethod
    def extract_from_pdf(data: bytes) -> str:
        """
        Use PyPDF2 to pull the text layer out of a PDF.
        Returns an empty string for unreadable files.
        """
        text = ""
        try:
            reader = PdfReader(io.BytesIO(data))
            for page in reader.pages:
                extracted = page.extract_text()
                if extracted:
                    text += extracted + "\n"
        except (PdfReadError, ValueError, OSError) as e:
            logger.error(f"Error extracting text from PDF: {e}")
            return ""

        return TextExtractor.clean_text(text)

    @staticmethod
    def extract_from_json(data: bytes) -> List[str]:
        """
        Exported certificate JSON carries its verification id directly.
        """
        try:
            doc = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning(f"Uploaded JSON could not be parsed: {e}")
            return []

        if not isinstance(doc, dict):
            return []
        # Accept both the API shape and a bare certificate object
        if isinstance(doc.get('certificate'), dict):
            doc = doc['certificate']

        ids = []
        for key in ('verificationId', 'verification_id', 'id'):
            value = doc.get(key)
            if value is not None and str(value).strip():
                ids.append(str(value).strip())
        return ids

    @staticmethod
    def extract_verification_ids(text: str) -> List[str]:
        """
        Candidates in priority order:
          - ids taken from /verify/<id> links,
          - bare UUIDs anywhere in the text.
        Duplicates are dropped, first occurrence wins.
        """
        if not text:
            return []
        candidates = VERIFY_URL_PATTERN.findall(text)
        candidates.extend(m.lower() for m in UUID_PATTERN.findall(text))
        return list(dict.fromkeys(candidates))
