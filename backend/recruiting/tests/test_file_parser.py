import io
import zipfile

import pytest
from docx import Document
from pypdf import PdfWriter

from recruiting import file_parser
from recruiting.exceptions import FileProcessingError, FileValidationError


def make_docx(*paragraphs, table_rows=None):
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table_rows:
        table = document.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def make_zip(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w') as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buf.getvalue()


@pytest.mark.unit
@pytest.mark.parametrize('filename,expected', [
    ('cv.PDF', True),
    ('cv.docx', True),
    ('cv.doc', True),
    ('batch.zip', True),
    ('cv.txt', False),
    ('noextension', False),
])
def test_is_valid_file_format(filename, expected):
    assert file_parser.is_valid_file_format(filename) is expected


@pytest.mark.unit
def test_validate_upload_rejects_bad_files(monkeypatch):
    with pytest.raises(FileValidationError, match='empty'):
        file_parser.validate_upload('cv.pdf', b'')
    with pytest.raises(FileValidationError, match='Unsupported'):
        file_parser.validate_upload('cv.txt', b'hello')
    monkeypatch.setattr(file_parser, 'MAX_FILE_SIZE', 4)
    with pytest.raises(FileValidationError, match='too large'):
        file_parser.validate_upload('cv.pdf', b'12345')


@pytest.mark.unit
def test_extract_docx_includes_tables():
    data = make_docx('Jane Doe', 'Python developer', table_rows=[['Skill', 'Years'], ['Django', '5']])

    text = file_parser.extract_text(data, 'jane.docx')

    assert 'Jane Doe' in text
    assert 'Python developer' in text
    assert 'Django | 5' in text


@pytest.mark.unit
def test_doc_extension_holding_docx_is_parsed():
    data = make_docx('Legacy named resume')
    assert 'Legacy named resume' in file_parser.extract_text(data, 'old.doc')


@pytest.mark.unit
def test_binary_doc_text_runs_are_recovered():
    data = b'\xd0\xcf\x11\xe0\x00\x00' + 'John Smith Senior Engineer'.encode('utf-16-le') + b'\x00\x01\x02'
    assert 'John Smith Senior Engineer' in file_parser.extract_text(data, 'john.doc')


@pytest.mark.unit
def test_blank_pdf_has_no_text():
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buf = io.BytesIO()
    writer.write(buf)

    with pytest.raises(FileProcessingError):
        file_parser.extract_text(buf.getvalue(), 'blank.pdf')


@pytest.mark.unit
def test_malformed_docx_is_a_validation_error():
    with pytest.raises(FileValidationError, match='Malformed DOCX'):
        file_parser.extract_text(b'definitely not a zip', 'broken.docx')


@pytest.mark.unit
def test_iter_archive_resumes_skips_noise():
    data = make_zip({
        'resumes/alice.docx': make_docx('Alice'),
        'resumes/bob.pdf': b'%PDF-1.4 fake',
        'resumes/notes.txt': b'ignore me',
        '__MACOSX/resumes/._alice.docx': b'fork',
        'resumes/.hidden.pdf': b'hidden',
        'resumes/empty.pdf': b'',
    })

    entries = dict(file_parser.iter_archive_resumes(data))

    assert set(entries) == {'alice.docx', 'bob.pdf'}
    assert entries['bob.pdf'] == b'%PDF-1.4 fake'


@pytest.mark.unit
def test_invalid_archive():
    with pytest.raises(FileValidationError, match='Invalid zip archive'):
        list(file_parser.iter_archive_resumes(b'not a zip'))


@pytest.mark.unit
def test_oversized_archive_entry_is_rejected_before_reading(monkeypatch):
    data = make_zip({'small.pdf': b'%PDF-1.4 ok', 'huge.pdf': b'A' * 64})
    monkeypatch.setattr(file_parser, 'MAX_FILE_SIZE', 32)

    def never_open(*args, **kwargs):
        raise AssertionError('oversized entry was opened')

    entries = file_parser.iter_archive_resumes(data)
    assert next(entries) == ('small.pdf', b'%PDF-1.4 ok')
    monkeypatch.setattr(zipfile.ZipFile, 'open', never_open)
    with pytest.raises(FileValidationError, match='too large: huge.pdf in archive'):
        next(entries)
