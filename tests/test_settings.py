import os
import pathlib

import pytest

from novelgrab.settings import FetchSettings, load_settings, settings_from_env


def test_defaults():
    s = FetchSettings()
    assert s.navigation_timeout == 30.0
    assert s.scroll_step == 800
    assert s.next_page_text == "下一頁"
    assert s.image_source_attrs[-1] == "src"


def test_env_values_are_coerced():
    values = settings_from_env(
        {
            "NOVELGRAB_HEADLESS": "false",
            "NOVELGRAB_CHAPTER_WORKERS": "4",
            "NOVELGRAB_STABLE_TOLERANCE_PX": "2.5",
            "NOVELGRAB_IMAGE_SOURCE_ATTRS": "data-src, src",
            "NOVELGRAB_OUT_DIR": "/tmp/novels",
            "NOVELGRAB_MAX_CHAPTERS": "3",
            "NOVELGRAB_CONTENT_SELECTOR": "#content",
            "NOVELGRAB_SCROLL_STEP": "",
            "UNRELATED": "1",
        }
    )
    assert values == {
        "headless": False,
        "chapter_workers": 4,
        "stable_tolerance_px": 2.5,
        "image_source_attrs": ("data-src", "src"),
        "out_dir": pathlib.Path("/tmp/novels"),
        "max_chapters": 3,
        "content_selector": "#content",
    }


def test_bad_env_value_names_the_variable():
    with pytest.raises(ValueError, match="NOVELGRAB_CHAPTER_WORKERS"):
        settings_from_env({"NOVELGRAB_CHAPTER_WORKERS": "many"})


def test_env_file_then_overrides(tmp_path, monkeypatch):
    monkeypatch.delenv("NOVELGRAB_SCROLL_STEP", raising=False)
    monkeypatch.delenv("NOVELGRAB_CHAPTER_WORKERS", raising=False)
    env_file = tmp_path / "novelgrab.env"
    env_file.write_text("NOVELGRAB_SCROLL_STEP=400\nNOVELGRAB_CHAPTER_WORKERS=2\n", encoding="utf-8")
    try:
        s = load_settings(env_file, chapter_workers=5, max_volumes=None)
    finally:
        os.environ.pop("NOVELGRAB_SCROLL_STEP", None)
        os.environ.pop("NOVELGRAB_CHAPTER_WORKERS", None)
    assert s.scroll_step == 400
    assert s.chapter_workers == 5
    assert s.max_volumes is None


def test_workers_must_be_positive(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError):
        load_settings(chapter_workers=0)
