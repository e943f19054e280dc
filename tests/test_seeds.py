"""Seed file tests."""

import pytest

from crawlindex.crawler.seeds import SeedFile
from crawlindex.errors import ConfigError


def test_load_skips_blanks_comments_and_duplicates(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text(
        "# seeds\nhttps://a.example\n\n  https://b.example  \nhttps://a.example\n",
        encoding="utf-8",
    )

    assert SeedFile(str(path)).load() == ["https://a.example", "https://b.example"]


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        SeedFile(str(tmp_path / "urls.txt")).load()


def test_file_without_urls(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text("# nothing yet\n\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        SeedFile(str(path)).load()


def test_append(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text("https://a.example\n", encoding="utf-8")
    seeds = SeedFile(str(path))

    assert seeds.append("https://b.example")
    assert seeds.load() == ["https://a.example", "https://b.example"]


def test_append_failure_is_reported(tmp_path):
    seeds = SeedFile(str(tmp_path / "missing-dir" / "urls.txt"))
    assert seeds.append("https://b.example") is False
