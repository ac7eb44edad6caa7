"""
File operation utilities
"""

from pathlib import Path
from typing import List, Union
from urllib.parse import unquote, urlparse

from visual_catalog.core.exceptions import DecodeFailure

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.gif', '.tiff', '.webp'}
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MB


def resolve_image_ref(image_ref: Union[str, Path]) -> Path:
    """Turn a filesystem path or file:// URI into a Path"""
    if isinstance(image_ref, Path):
        return image_ref

    if image_ref.startswith('file:'):
        return Path(unquote(urlparse(image_ref).path))

    return Path(image_ref)


def read_image_bytes(image_ref: Union[str, Path],
                     max_size: int = MAX_FILE_SIZE) -> bytes:
    """
    Read the encoded bytes behind an image reference

    Raises DecodeFailure when the file is missing, too large or unreadable.
    """
    path = resolve_image_ref(image_ref)

    try:
        if not path.is_file():
            raise DecodeFailure(f"Image not found: {path}")

        if path.stat().st_size > max_size:
            raise DecodeFailure(f"Image exceeds {format_file_size(max_size)}: {path}")

        return path.read_bytes()
    except OSError as e:
        raise DecodeFailure(f"Cannot read image {path}: {e}") from e


def get_image_files(directory: str, recursive: bool = True) -> List[str]:
    """Get all image files in directory"""
    path = Path(directory)
    pattern = '**/*' if recursive else '*'

    image_files = [
        f for f in path.glob(pattern)
        if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
    ]

    return [str(f) for f in sorted(image_files)]


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"
