import re
from pathlib import Path

from docx import Document

_HEADING_STYLE_RE = re.compile(r"^Heading (\d)$")


class DocxLoader:

    def supports(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == ".docx"

    def load(self, file_path: Path) -> str:
        """Extract paragraphs, turning Word heading styles into markdown headings."""
        doc = Document(file_path)
        blocks = []
        for p in doc.paragraphs:
            text = p.text.strip()
            if not text:
                continue
            match = _HEADING_STYLE_RE.match(p.style.name if p.style is not None else "")
            if match:
                level = min(int(match.group(1)), 6)
                text = f"{'#' * level} {text}"
            blocks.append(text)
        return "\n\n".join(blocks)
