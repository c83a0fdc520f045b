import json
import pytest
from pathlib import Path
from unittest.mock import patch, MagicMock
from plexnorm.infrastructure.ffprobe import FFprobeAdapter


def _probe_result(streams, fmt=None, returncode=0):
    payload = {"streams": streams, "format": fmt or {}}
    return MagicMock(returncode=returncode, stdout=json.dumps(payload), stderr="")


HDR_STREAM = {
    "codec_type": "video",
    "codec_name": "hevc",
    "pix_fmt": "yuv420p10le",
    "color_transfer": "smpte2084",
    "color_primaries": "bt2020",
    "color_space": "bt2020nc",
}


def test_get_stream_info_hdr():
    adapter = FFprobeAdapter()
    result = _probe_result([{"codec_type": "audio"}, HDR_STREAM], {"duration": "5400.5"})

    with patch("subprocess.run", return_value=result):
        info = adapter.get_stream_info(Path("movie.mkv"))

    assert info["codec"] == "hevc"
    assert info["duration"] == 5400.5
    assert info["color_transfer"] == "smpte2084"
    assert info["pix_fmt"] == "yuv420p10le"


def test_duration_falls_back_to_matroska_tag():
    adapter = FFprobeAdapter()
    stream = {"codec_type": "video", "tags": {"DURATION": "01:02:03.500000000"}}

    with patch("subprocess.run", return_value=_probe_result([stream], {"duration": "N/A"})):
        assert adapter.get_duration(Path("movie.mkv")) == pytest.approx(3723.5)


def test_duration_falls_back_to_time_base():
    adapter = FFprobeAdapter()
    stream = {"codec_type": "video", "duration_ts": 90000 * 60, "time_base": "1/90000"}

    with patch("subprocess.run", return_value=_probe_result([stream])):
        assert adapter.get_duration(Path("movie.mkv")) == pytest.approx(60.0)


def test_get_duration_unknown_returns_none():
    adapter = FFprobeAdapter()

    with patch("subprocess.run", return_value=_probe_result([{"codec_type": "video"}])):
        assert adapter.get_duration(Path("movie.mkv")) is None


def test_get_duration_probe_failure_returns_none():
    adapter = FFprobeAdapter()

    with patch("subprocess.run", return_value=_probe_result([], returncode=1)):
        assert adapter.get_duration(Path("broken.mkv")) is None


def test_get_duration_no_video_stream_returns_none():
    adapter = FFprobeAdapter()

    with patch("subprocess.run", return_value=_probe_result([{"codec_type": "audio"}], {"duration": "10"})):
        assert adapter.get_duration(Path("audio_only.mkv")) is None


def test_get_duration_missing_binary_returns_none():
    adapter = FFprobeAdapter()

    with patch("subprocess.run", side_effect=FileNotFoundError("ffprobe")):
        assert adapter.get_duration(Path("movie.mkv")) is None


def test_get_color_info_cleans_placeholders():
    adapter = FFprobeAdapter()
    stream = {
        "codec_type": "video",
        "pix_fmt": "yuv420p",
        "color_transfer": "unknown",
        "color_primaries": "",
        "color_space": "N/A",
    }

    with patch("subprocess.run", return_value=_probe_result([stream])):
        info = adapter.get_color_info(Path("movie.mkv"))

    assert info == {
        "color_transfer": None,
        "pix_fmt": "yuv420p",
        "color_primaries": None,
        "color_space": None,
    }


def test_get_color_info_propagates_probe_failure():
    adapter = FFprobeAdapter()

    with patch("subprocess.run", return_value=_probe_result([], returncode=1)):
        with pytest.raises(RuntimeError):
            adapter.get_color_info(Path("broken.mkv"))
