import stat
import pytest
from unittest.mock import patch
from plexnorm.domain.errors import SetupError
from plexnorm.infrastructure.workspace import RunWorkspace

def test_create_private_directory(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path)
    path = ws.create()

    assert path.is_dir()
    assert path.parent == tmp_path
    assert path.name.startswith("plexnorm_run.")
    assert stat.S_IMODE(path.stat().st_mode) == 0o700

def test_control_file_paths(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path)
    path = ws.create()

    assert ws.stderr_log(2) == path / "job_2.stderr.log"
    assert ws.loudnorm_stats(2) == path / "job_2.loudnorm.log"

def test_paths_before_create_raise(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path)
    with pytest.raises(SetupError):
        ws.stderr_log(0)

def test_create_failure_is_setup_error(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path / "missing")
    with pytest.raises(SetupError, match="Failed to create run workspace"):
        ws.create()

def test_create_permission_error(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path)
    with patch("tempfile.mkdtemp", side_effect=PermissionError("denied")):
        with pytest.raises(SetupError):
            ws.create()

def test_cleanup_is_idempotent(tmp_path):
    ws = RunWorkspace(temp_root=tmp_path)
    path = ws.create()
    ws.stderr_log(0).write_text("log")

    ws.cleanup()
    ws.cleanup()

    assert not path.exists()
    assert ws.path is None

def test_default_root_uses_tmpdir(tmp_path, monkeypatch):
    monkeypatch.setenv("TMPDIR", str(tmp_path))
    assert RunWorkspace().temp_root == tmp_path
