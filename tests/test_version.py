from musicbingo import version


def test_version_read_from_first_valid_file(monkeypatch, tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    good = tmp_path / "version.json"
    good.write_text('{"version": " 2.1.0 "}', encoding="utf-8")
    monkeypatch.setattr(version, "_candidate_version_paths", lambda: [tmp_path / "missing.json", broken, good])
    assert version.get_version() == "2.1.0"
    assert version.get_app_title() == "Music Bingo 2.1.0"


def test_version_falls_back(monkeypatch, tmp_path):
    monkeypatch.setattr(version, "_candidate_version_paths", lambda: [tmp_path / "missing.json"])
    assert version.get_version() == version.FALLBACK_VERSION
