import os
from pathlib import Path
from typing import Iterable, List, Generator
from plexnorm.domain.models import VideoFile

class FileScanner:
    """Expands file and directory arguments into the list of videos to normalize."""

    def __init__(self, extensions: List[str], output_suffix: str = "_normalized"):
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
        self.output_suffix = output_suffix

    def _is_candidate(self, file_path: Path) -> bool:
        if file_path.suffix.lower() not in self.extensions:
            return False
        # Skip our own outputs from a previous run
        return not file_path.stem.endswith(self.output_suffix)

    def scan(self, root_dir: Path) -> Generator[VideoFile, None, None]:
        """Recursively scans the directory and yields VideoFile objects."""
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            # Ensure deterministic traversal: sort directories and files
            dirs.sort()
            files.sort()

            for file_name in files:
                file_path = root_path / file_name
                if not self._is_candidate(file_path):
                    continue
                try:
                    yield VideoFile(path=file_path, size_bytes=file_path.stat().st_size)
                except OSError:
                    # Skip files we can't access
                    continue

    def expand(self, inputs: Iterable[Path]) -> List[VideoFile]:
        """Directories are scanned, files are taken as given, anything else is an error."""
        files: List[VideoFile] = []
        for input_path in inputs:
            input_path = Path(input_path)
            if input_path.is_dir():
                files.extend(self.scan(input_path))
            elif input_path.is_file():
                files.append(VideoFile(path=input_path, size_bytes=input_path.stat().st_size))
            else:
                raise FileNotFoundError(f"'{input_path}' not found!")
        return files
