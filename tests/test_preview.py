"""
Unit tests for the interactive preview loop, driven by a fake clock.
"""

import asyncio

import pytest

from conftest import make_png, make_track
from slidereel.errors import PlaybackUnavailableError
from slidereel.models import AspectRatio, Slide, SubtitleStyle
from slidereel.phase3_audio_processing import audio_context
from slidereel.phase3_audio_processing.audio_context import AudioContext, PlaybackStream
from slidereel.phase4_video_generation.preview import PreviewPlayer


class FakeStream(PlaybackStream):
    instances = []

    def __init__(self, track):
        self.track = track
        self.stopped = False
        FakeStream.instances.append(self)

    def start(self):
        pass

    def stop(self):
        self.stopped = True

    @property
    def is_active(self):
        return not self.stopped


class BrokenStream(FakeStream):
    def start(self):
        raise PlaybackUnavailableError("no audio device")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    FakeStream.instances = []
    return FakeClock()


@pytest.fixture
def slide():
    return Slide(
        image_bytes=make_png(),
        script="The quick brown fox jumps over the lazy dog",
        subtitle="Foxes and dogs",
        audio=make_track(2.0),
    )


def _player(slide, clock, states, stream_factory=FakeStream, **kwargs):
    def on_update(state):
        states.append(state)
        # Each published tick advances playback by 100ms
        clock.now += 0.1

    return PreviewPlayer(
        slide,
        SubtitleStyle(),
        aspect_ratio=AspectRatio.PORTRAIT_9_16,
        on_update=on_update,
        context_factory=lambda: AudioContext(stream_factory=stream_factory, clock=clock),
        tick_seconds=0,
        **kwargs,
    )


async def test_playback_walks_through_chunks(slide, clock):
    states = []
    player = _player(slide, clock, states)

    await player.play()

    playing = [s for s in states if s.is_playing]
    captions = []
    for s in playing:
        if not captions or captions[-1] != s.caption:
            captions.append(s.caption)
    assert captions == ["The quick brown fox", "jumps over the lazy", "dog"]
    assert playing[-1].progress == 1.0
    assert all(b.progress >= a.progress for a, b in zip(playing, playing[1:]))

    assert not player.is_playing
    assert player.caption == "Foxes and dogs"
    assert states[-1].caption == "Foxes and dogs"
    assert FakeStream.instances[0].stopped
    assert audio_context._context is None


async def test_stop_mid_playback_releases_stream(slide, clock):
    states = []
    player = _player(slide, clock, states)
    original_update = player.on_update

    def stop_after_three(state):
        original_update(state)
        if sum(1 for s in states if s.is_playing) == 3:
            player.stop()

    player.on_update = stop_after_three
    await player.start()

    assert sum(1 for s in states if s.is_playing) == 3
    assert not player.is_playing
    assert player.caption == slide.static_caption
    assert FakeStream.instances[0].stopped
    assert audio_context._context is None


async def test_stop_is_idempotent(slide, clock):
    states = []
    player = _player(slide, clock, states)

    player.stop()
    player.stop()

    assert states == []
    assert not player.is_playing


async def test_restart_stops_previous_playback(slide, clock):
    states = []
    player = _player(slide, clock, states)

    first = player.start()
    await asyncio.sleep(0)
    second = player.start()
    await asyncio.gather(first, second)

    assert len(FakeStream.instances) == 2
    assert all(stream.stopped for stream in FakeStream.instances)
    assert audio_context._context is None


async def test_unavailable_playback_disables_controls(slide, clock):
    states = []
    player = _player(slide, clock, states, stream_factory=BrokenStream)

    await player.play()

    assert not player.controls_enabled
    assert states[-1].controls_enabled is False
    assert not player.is_playing
    assert audio_context._context is None


async def test_slide_without_audio_has_no_controls(clock):
    states = []
    player = _player(Slide(image_bytes=make_png(), script="Silent slide"), clock, states)

    await player.play()

    assert not player.controls_enabled
    assert states == []
    assert player.caption == "Silent slide"


def test_preview_font_applies_correction(slide, clock):
    player = _player(slide, clock, [], surface_width=1280, surface_height=720)

    assert player.font.font_size_px == pytest.approx(32 * 0.95)


def test_unmeasured_surface_uses_reference_scale(slide, clock):
    player = _player(slide, clock, [])

    assert player.font.font_size_px == pytest.approx(32 * 0.95)


def test_render_uses_surface_size(slide, clock):
    player = _player(slide, clock, [], surface_width=320, surface_height=180)

    assert player.render().shape == (180, 320, 3)
