"""
Archive helpers for stored job content.

Downloaded reports and feed bodies are kept zipped in the job record and
unzipped again right before submission or callback delivery.
"""

import io
import zipfile

ARCHIVE_ENTRY_NAME = "content"


def create_archive(content: bytes, entry_name: str = ARCHIVE_ENTRY_NAME) -> bytes:
    """Zip the given bytes into a single-entry archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(entry_name, content)
    return buffer.getvalue()


def extract_archive(archived: bytes) -> bytes:
    """Return the content of a single-entry archive."""
    with zipfile.ZipFile(io.BytesIO(archived)) as archive:
        names = archive.namelist()
        if len(names) != 1:
            raise ValueError(f"Expected a single-entry archive, found {len(names)} entries")
        return archive.read(names[0])
