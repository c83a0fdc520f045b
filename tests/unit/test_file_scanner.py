import pytest
from pathlib import Path
from plexnorm.infrastructure.file_scanner import FileScanner

def test_file_scanner_recursive(dummy_video_files, test_input_dir):
    scanner = FileScanner(extensions=[".mkv"])
    files = list(scanner.scan(test_input_dir))

    assert len(files) == 4
    names = [f.path.name for f in files]
    assert names == ["video0.mkv", "video1.mkv", "video2.mkv", "episode.mkv"]
    assert all(f.size_bytes > 0 for f in files)

def test_file_scanner_skips_other_extensions_and_outputs(test_input_dir):
    (test_input_dir / "movie.mkv").write_bytes(b"x")
    (test_input_dir / "movie_normalized.mkv").write_bytes(b"x")
    (test_input_dir / "notes.txt").write_text("x")
    (test_input_dir / "clip.MKV").write_bytes(b"x")

    scanner = FileScanner(extensions=["mkv"], output_suffix="_normalized")
    names = sorted(f.path.name for f in scanner.scan(test_input_dir))

    assert names == ["clip.MKV", "movie.mkv"]

def test_expand_mixes_files_and_directories(dummy_video_files, test_input_dir, tmp_path):
    single = tmp_path / "single.mkv"
    single.write_bytes(b"x")

    scanner = FileScanner(extensions=[".mkv"])
    files = scanner.expand([single, test_input_dir])

    assert files[0].path == single
    assert len(files) == 5

def test_expand_keeps_explicit_files_regardless_of_extension(tmp_path):
    odd = tmp_path / "movie.avi"
    odd.write_bytes(b"x")

    files = FileScanner(extensions=[".mkv"]).expand([odd])

    assert [f.path for f in files] == [odd]

def test_expand_missing_input_raises(tmp_path):
    scanner = FileScanner(extensions=[".mkv"])
    with pytest.raises(FileNotFoundError, match="not found!"):
        scanner.expand([tmp_path / "missing.mkv"])

def test_expand_empty_directory(test_input_dir):
    assert FileScanner(extensions=[".mkv"]).expand([test_input_dir]) == []
