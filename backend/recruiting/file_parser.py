"""
Text extraction for uploaded resumes.

PDF goes through pypdf, DOCX through python-docx. Legacy binary .doc files
have no maintained pure-Python reader, so we first try python-docx (many
".doc" uploads are really DOCX) and otherwise pull readable text runs out of
the binary stream.
"""
import io
import logging
import re
import zipfile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from recruiting.exceptions import FileProcessingError, FileValidationError

logger = logging.getLogger(__name__)

RESUME_EXTENSIONS = ('.pdf', '.docx', '.doc')
ARCHIVE_EXTENSIONS = ('.zip',)
ALLOWED_EXTENSIONS = RESUME_EXTENSIONS + ARCHIVE_EXTENSIONS
MAX_FILE_SIZE = 50 * 1024 * 1024

# Runs of at least 4 printable characters in UTF-16LE, the encoding Word 97+ uses for text
_DOC_UTF16_RUN = re.compile(rb'(?:[\x20-\x7e]\x00){4,}')
_DOC_ASCII_RUN = re.compile(rb'[\x20-\x7e\r\n\t]{4,}')


def get_extension(filename):
    filename = (filename or '').lower()
    dot = filename.rfind('.')
    return filename[dot:] if dot != -1 else ''


def is_valid_file_format(filename):
    return get_extension(filename) in ALLOWED_EXTENSIONS


def is_resume_file(filename):
    return get_extension(filename) in RESUME_EXTENSIONS


def is_archive(filename):
    return get_extension(filename) in ARCHIVE_EXTENSIONS


def validate_upload(filename, data):
    """Reject uploads that can never be processed."""
    if not data:
        raise FileValidationError(f'File is empty: {filename}')
    if not is_valid_file_format(filename):
        raise FileValidationError(
            f'Unsupported file format: {filename}. Allowed: {", ".join(ALLOWED_EXTENSIONS)}'
        )
    if len(data) > MAX_FILE_SIZE:
        raise FileValidationError(_too_large(filename, len(data)))


def _too_large(filename, size):
    return f'File too large: {filename} ({size} bytes, limit {MAX_FILE_SIZE} bytes)'


def iter_archive_resumes(data):
    """
    Yield ``(filename, bytes)`` for every resume inside a zip archive.

    Directories, macOS resource forks, hidden files and unsupported formats
    are skipped. Nested archives are not expanded. An entry over the size
    limit rejects the whole archive.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise FileValidationError(f'Invalid zip archive: {exc}') from exc

    with archive:
        for info in archive.infolist():
            name = info.filename
            basename = name.rsplit('/', 1)[-1]
            if info.is_dir() or name.startswith('__MACOSX/') or not basename or basename.startswith('.'):
                continue
            if not is_resume_file(basename):
                logger.info('Skipping unsupported archive entry %s', name)
                continue
            if info.file_size > MAX_FILE_SIZE:
                raise FileValidationError(_too_large(f'{name} in archive', info.file_size))
            # The declared size can lie, so never read past the limit
            with archive.open(info) as entry:
                content = entry.read(MAX_FILE_SIZE + 1)
            if len(content) > MAX_FILE_SIZE:
                raise FileValidationError(_too_large(f'{name} in archive', len(content)))
            if not content:
                logger.info('Skipping empty archive entry %s', name)
                continue
            yield basename, content


def extract_text(data, filename):
    """Return the plain text of a resume file."""
    ext = get_extension(filename)
    if ext not in RESUME_EXTENSIONS:
        raise FileValidationError(f'Unsupported file format: {filename}')

    if ext == '.pdf':
        text = _extract_pdf(data, filename)
    elif ext == '.docx':
        text = _extract_docx(data, filename)
    else:
        text = _extract_doc(data, filename)

    text = _normalize_whitespace(text)
    if not text:
        raise FileProcessingError(f'No text could be extracted from {filename}')
    logger.debug('Extracted %d characters from %s', len(text), filename)
    return text


def _extract_pdf(data, filename):
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or '' for page in reader.pages]
    except (PdfReadError, ValueError) as exc:
        raise FileValidationError(f'Malformed PDF {filename}: {exc}') from exc
    return '\n\n'.join(pages)


def _extract_docx(data, filename):
    try:
        document = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise FileValidationError(f'Malformed DOCX {filename}: {exc}') from exc
    blocks = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            blocks.append(' | '.join(cell.text for cell in row.cells))
    return '\n'.join(blocks)


def _extract_doc(data, filename):
    if zipfile.is_zipfile(io.BytesIO(data)):
        return _extract_docx(data, filename)
    runs = [m.group().decode('utf-16-le') for m in _DOC_UTF16_RUN.finditer(data)]
    if not runs:
        runs = [m.group().decode('ascii') for m in _DOC_ASCII_RUN.finditer(data)]
    return '\n'.join(runs)


def _normalize_whitespace(text):
    text = (text or '').replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'[ \t\f\v]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()
