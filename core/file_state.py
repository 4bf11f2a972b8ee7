"""Derived, read-only views over File snapshots.

The backend's flags are trusted as reported; nothing here enforces that
"downloaded" and "downloading" are mutually exclusive.
"""
from network.protocol import File


def is_downloaded(file: File) -> bool:
    return file.local.is_downloading_completed


def is_downloading(file: File) -> bool:
    return file.local.is_downloading_active


def can_download(file: File) -> bool:
    return file.local.can_be_downloaded


def is_uploaded(file: File) -> bool:
    return file.remote.is_uploading_completed


def is_uploading(file: File) -> bool:
    return file.remote.is_uploading_active


def downloaded_or_eligible(file: File) -> bool:
    return is_downloaded(file) or can_download(file)


def total_size(file: File) -> int:
    """Declared size, falling back to the approximate expected size."""
    return file.size if file.size != 0 else file.expected_size


def _fraction(done: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(max(done / total, 0.0), 1.0)


def download_progress(file: File) -> float:
    """Fraction of the file downloaded, clamped to [0, 1]."""
    return _fraction(file.local.downloaded_size, total_size(file))


def upload_progress(file: File) -> float:
    """Fraction of the file uploaded, clamped to [0, 1]."""
    return _fraction(file.remote.uploaded_size, total_size(file))
