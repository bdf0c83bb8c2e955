import sys
import unittest
from io import BytesIO
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cvlens.core.errors import DocumentExtractionError, UnsupportedDocumentError  # noqa: E402
from cvlens.parsing.extract import extract_text, resolve_extension  # noqa: E402


class ExtractTextTests(unittest.TestCase):
    def test_plain_text(self):
        content = "Jane Doe\nEXPERIENCE\nEngineer"
        document = extract_text(content.encode("utf-8"), filename="cv.txt")
        self.assertEqual(document.source_type, "txt")
        self.assertEqual(document.text, content)
        self.assertEqual(document.file_name, "cv.txt")
        self.assertTrue(document.doc_id)

    def test_bom_is_stripped(self):
        document = extract_text("\ufeffHej".encode("utf-8"), filename="cv.txt")
        self.assertEqual(document.text, "Hej")

    def test_extension_from_content_type(self):
        self.assertEqual(resolve_extension(None, "application/pdf"), "pdf")
        self.assertEqual(resolve_extension("CV.DOCX", None), "docx")

    def test_pdf_without_signature_is_rejected(self):
        with self.assertRaises(UnsupportedDocumentError):
            extract_text(b"plain text pretending", filename="cv.pdf")

    def test_legacy_doc_is_rejected(self):
        with self.assertRaises(UnsupportedDocumentError):
            extract_text(b"\xd0\xcf\x11\xe0 binary", filename="cv.doc")

    def test_empty_upload(self):
        with self.assertRaises(DocumentExtractionError):
            extract_text(b"", filename="cv.txt")

    def test_docx_tables_keep_document_order(self):
        from docx import Document

        doc = Document()
        doc.add_paragraph("EXPERIENCE")
        role_lines = ["Senior Engineer", "Acme Inc", "Jan 2020 - Dec 2022", "Built the billing platform"]
        table = doc.add_table(rows=len(role_lines), cols=1)
        for row, line in zip(table.rows, role_lines):
            row.cells[0].text = line
        doc.add_paragraph("EDUCATION")
        doc.add_paragraph("BSc Computer Science")
        buffer = BytesIO()
        doc.save(buffer)

        document = extract_text(buffer.getvalue(), filename="cv.docx")

        self.assertEqual(document.source_type, "docx")
        self.assertEqual(
            document.text.splitlines(),
            ["EXPERIENCE", *role_lines, "EDUCATION", "BSc Computer Science"],
        )
        self.assertEqual(document.details["tables"], 1)


if __name__ == "__main__":
    unittest.main()
