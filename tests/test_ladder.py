from transcoding.ladder import LADDER, MasterManifest, applicable_renditions, playlist_bandwidth


def _names(renditions):
    return [r.name for r in renditions]


def test_ladder_is_ascending():
    heights = [r.height for r in LADDER]
    assert heights == sorted(heights)
    assert _names(LADDER) == ["240p", "480p", "720p", "1080p"]


def test_applicable_renditions_never_upscale():
    assert _names(applicable_renditions(720)) == ["240p", "480p", "720p"]
    assert _names(applicable_renditions(1080)) == ["240p", "480p", "720p", "1080p"]
    assert _names(applicable_renditions(2160)) == ["240p", "480p", "720p", "1080p"]
    assert _names(applicable_renditions(479)) == ["240p"]
    assert applicable_renditions(144) == []


def test_master_manifest_lists_renditions_in_order():
    manifest = MasterManifest()
    for r in applicable_renditions(720):
        manifest.add(r)

    assert manifest.render() == (
        "#EXTM3U\n"
        "#EXT-X-VERSION:3\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=400000,RESOLUTION=426x240\n"
        "240p/playlist.m3u8\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=1000000,RESOLUTION=854x480\n"
        "480p/playlist.m3u8\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720\n"
        "720p/playlist.m3u8\n"
    )


def test_bandwidth_read_back_from_playlist(tmp_path):
    r = LADDER[2]
    assert playlist_bandwidth("#EXTM3U\n#EXTINF:4.0,\nsegment000.ts\n", r) == 2_500_000
    assert playlist_bandwidth("#EXT-X-STREAM-INF:BANDWIDTH=2811000,RESOLUTION=1280x720\n", r) == 2_811_000

    playlist = tmp_path / "playlist.m3u8"
    playlist.write_text("#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=777\n")
    entry = MasterManifest().add(r, playlist)
    assert entry.bandwidth == 777
    assert entry.playlist_path == "720p/playlist.m3u8"


def test_write_manifest(tmp_path):
    manifest = MasterManifest()
    manifest.add(LADDER[0])
    out = manifest.write(tmp_path / "master.m3u8")
    assert out.read_text().count("#EXT-X-STREAM-INF") == 1
    assert len(manifest) == 1
