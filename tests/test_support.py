"""Tests for the env loader, the rate limiter and the ffprobe helper."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from viralclip.common.env import load_env
from viralclip.helpers import media
from viralclip.rate_limit import RateLimiter


def test_load_env_respects_existing_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\n"
        "export VIRALCLIP_TEST_A='quoted value'\n"
        "VIRALCLIP_TEST_B=plain\n"
        "not a pair\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("VIRALCLIP_TEST_A", raising=False)
    monkeypatch.setenv("VIRALCLIP_TEST_B", "already set")

    load_env(env_file)

    assert os.environ["VIRALCLIP_TEST_A"] == "quoted value"
    assert os.environ["VIRALCLIP_TEST_B"] == "already set"
    monkeypatch.delenv("VIRALCLIP_TEST_A")


def test_load_env_ignores_missing_file(tmp_path: Path) -> None:
    load_env(tmp_path / "absent.env")


def test_rate_limiter_window() -> None:
    now = [0.0]
    limiter = RateLimiter(window_seconds=900, max_requests=2, clock=lambda: now[0])

    assert limiter.allow("1.2.3.4")
    assert limiter.allow("1.2.3.4")
    assert not limiter.allow("1.2.3.4")
    assert limiter.allow("5.6.7.8")

    now[0] = 901.0
    assert limiter.allow("1.2.3.4")


def test_probe_media_duration_parses_ffprobe_output(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        media.subprocess, "run", lambda *a, **k: SimpleNamespace(stdout="39.960000\n")
    )
    assert media.probe_media_duration("clip.mp4") == pytest.approx(39.96)


@pytest.mark.parametrize("stdout", ["N/A\n", "", "0\n", "nan\n"])
def test_probe_media_duration_rejects_bad_output(monkeypatch: pytest.MonkeyPatch, stdout: str) -> None:
    monkeypatch.setattr(media.subprocess, "run", lambda *a, **k: SimpleNamespace(stdout=stdout))
    assert media.probe_media_duration("clip.mp4") is None


def test_probe_media_duration_survives_ffprobe_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args, **kwargs):
        raise subprocess.CalledProcessError(1, args[0])

    monkeypatch.setattr(media.subprocess, "run", _fail)
    assert media.probe_media_duration("clip.mp4") is None


def test_rate_limiter_forgets_idle_clients() -> None:
    now = [0.0]
    limiter = RateLimiter(window_seconds=60, max_requests=5, clock=lambda: now[0])
    for index in range(100):
        limiter.allow(f"10.0.0.{index}")
    assert limiter.tracked_clients() == 100

    now[0] = 61.0
    assert limiter.allow("10.0.1.1")

    assert limiter.tracked_clients() == 1
