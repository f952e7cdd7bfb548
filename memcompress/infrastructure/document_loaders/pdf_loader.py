from pathlib import Path

from pypdf import PdfReader


class PDFLoader:

    def supports(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == ".pdf"

    def load(self, file_path: Path) -> str:
        """Extract page text, one "## Page N" section per non-empty page."""
        reader = PdfReader(file_path)
        sections = []
        for number, page in enumerate(reader.pages, 1):
            text = (page.extract_text() or "").strip()
            if text:
                sections.append(f"## Page {number}\n\n{text}")
        return "\n\n".join(sections)
