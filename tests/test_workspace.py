import logging

import pytest

from transcoding.workspace import Workspace


def test_workspace_is_removed_after_success(tmp_path):
    with Workspace("normalize", root=tmp_path) as ws:
        ws.path("input.mp4").write_bytes(b"x")
        (ws.subdir("hls-output/240p") / "segment000.ts").write_bytes(b"x")
        created = ws.dir
        assert created.parent == tmp_path
        assert created.name.startswith("normalize-")

    assert not created.exists()
    assert list(tmp_path.iterdir()) == []


def test_workspace_is_removed_when_the_block_raises(tmp_path):
    with pytest.raises(RuntimeError):
        with Workspace("hls", root=tmp_path) as ws:
            ws.path("input.mp4").write_bytes(b"x")
            raise RuntimeError("ffmpeg died")
    assert list(tmp_path.iterdir()) == []


def test_concurrent_workspaces_do_not_collide(tmp_path):
    with Workspace("hls", root=tmp_path) as a, Workspace("hls", root=tmp_path) as b:
        assert a.dir != b.dir
        assert a.dir.exists() and b.dir.exists()


def test_cleanup_failure_is_logged_not_raised(tmp_path, monkeypatch, caplog):
    def refuse(path):
        raise PermissionError("busy")

    monkeypatch.setattr("transcoding.workspace.shutil.rmtree", refuse)
    with caplog.at_level(logging.WARNING, logger="transcoding.workspace"):
        with Workspace("normalize", root=tmp_path):
            pass
    assert "Could not remove workspace" in caplog.text


def test_path_requires_active_workspace(tmp_path):
    ws = Workspace("normalize", root=tmp_path)
    with pytest.raises(RuntimeError):
        ws.path("x")
    assert ws.cleanup() is True
