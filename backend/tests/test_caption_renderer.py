"""Caption frame rendering with Pillow."""

import io

import pytest
from PIL import Image, ImageDraw, ImageFont

from models.captions import CaptionAnimation, CaptionCue, CaptionStyle, CaptionWord, RenderOptions
from services.caption_renderer import (
    animation_state,
    burst_frame_count,
    render_caption_image,
    render_cue_frames,
    render_word_frames,
    wrap_text,
)
from services.errors import CaptionError


@pytest.fixture
def options() -> RenderOptions:
    return RenderOptions(width=270, height=480, fps=30)


def cue(text: str = "Bright open living room", start: float = 1.0, end: float = 3.0) -> CaptionCue:
    return CaptionCue(index=1, start_time=start, end_time=end, text=text)


def decode(png: bytes) -> Image.Image:
    return Image.open(io.BytesIO(png))


def test_frame_is_transparent_png_of_output_size(options) -> None:
    image = decode(render_caption_image("Hello", CaptionStyle(), options))

    assert image.format == "PNG"
    assert image.mode == "RGBA"
    assert image.size == (270, 480)
    assert image.getpixel((0, 0))[3] == 0


def test_background_box_sits_at_the_anchor(options) -> None:
    style = CaptionStyle(position="bottom", backgroundColor="#112233")

    image = decode(render_caption_image("Hello", style, options))

    assert image.getbbox() is not None
    top = image.getbbox()[1]
    assert top > 480 * 0.5


def test_fade_opacity_scales_alpha(options) -> None:
    style = CaptionStyle(backgroundOpacity=100)
    full = decode(render_caption_image("Hello", style, options))
    half = decode(render_caption_image("Hello", style, options, opacity=0.5))

    assert max(half.getchannel("A").getdata()) < max(full.getchannel("A").getdata())


def test_whole_cue_without_animation_is_one_frame(options) -> None:
    frames = render_cue_frames(cue(), CaptionStyle(), options)

    assert len(frames) == 1
    assert (frames[0].timestamp, frames[0].duration) == (1.0, 2.0)


def test_pop_burst_grows_to_full_size(options) -> None:
    frames = render_cue_frames(cue(), CaptionStyle(animation="pop"), options)

    burst, static = frames[:-1], frames[-1]
    assert len(burst) == burst_frame_count(0.2, 30) == 6
    assert burst[0].scale < 1.0
    assert burst[-1].scale == pytest.approx(1.0)
    assert [f.scale for f in burst] == sorted(f.scale for f in burst)
    assert static.timestamp == pytest.approx(1.2)
    assert static.timestamp + static.duration == pytest.approx(3.0)


def test_static_frame_follows_the_last_burst_frame_at_odd_fps() -> None:
    options = RenderOptions(width=270, height=480, fps=24)

    frames = render_cue_frames(cue(), CaptionStyle(animation="pop"), options)

    burst, static = frames[:-1], frames[-1]
    # 0.2 s at 24 fps rounds up to five frames, ending at 1.0 + 5/24
    assert len(burst) == 5
    assert burst[-1].timestamp + burst[-1].duration == pytest.approx(static.timestamp)
    assert static.timestamp == pytest.approx(1.0 + 5 / 24)
    assert static.timestamp + static.duration == pytest.approx(3.0)
    spans = [(f.timestamp, f.timestamp + f.duration) for f in frames]
    assert all(prev_end <= next_start + 1e-9 for (_, prev_end), (next_start, _) in zip(spans, spans[1:]))


def test_fade_burst_ramps_opacity(options) -> None:
    frames = render_cue_frames(cue(), CaptionStyle(animation="fade"), options)

    burst = frames[:-1]
    assert len(burst) == 9
    assert burst[0].opacity < burst[-1].opacity == pytest.approx(1.0)


def test_burst_is_cut_at_a_short_cue_end(options) -> None:
    frames = render_cue_frames(cue(start=0.0, end=0.1), CaptionStyle(animation="pop"), options)

    assert len(frames) == 3
    assert frames[-1].timestamp + frames[-1].duration == pytest.approx(0.1)


def test_karaoke_renders_one_frame_per_word(options) -> None:
    frames = render_cue_frames(cue("one two three four", 0.0, 2.0), CaptionStyle(animation="karaoke"), options)

    assert [f.timestamp for f in frames] == [0.0, 0.5, 1.0, 1.5]
    assert frames[-1].timestamp + frames[-1].duration == pytest.approx(2.0)


def test_single_word_mode_renders_each_word(options) -> None:
    words = [CaptionWord("Big", 0.0, 0.5), CaptionWord("view", 0.5, 1.0), CaptionWord("gone", 1.0, 1.0)]

    frames = render_word_frames(words, CaptionStyle(singleWordMode=True), options)

    assert [(f.timestamp, f.duration) for f in frames] == [(0.0, 0.5), (0.5, 0.5)]


def test_empty_cue_is_rejected(options) -> None:
    with pytest.raises(CaptionError):
        render_cue_frames(cue("   "), CaptionStyle(), options)


def test_wrap_respects_max_lines() -> None:
    draw = ImageDraw.Draw(Image.new("RGBA", (10, 10)))
    font = ImageFont.load_default(size=20)

    lines = wrap_text(draw, "a fairly long caption that must wrap over many lines", font, 80, 2)

    assert len(lines) == 2
    assert all(draw.textlength(line, font=font) <= 80 or " " not in line for line in lines)


@pytest.mark.parametrize(
    "animation, progress, expected",
    [
        (CaptionAnimation.POP, 0.0, (0.8, 1.0)),
        (CaptionAnimation.POP, 1.0, (1.0, 1.0)),
        (CaptionAnimation.FADE, 0.5, (1.0, 0.5)),
        (CaptionAnimation.NONE, 0.2, (1.0, 1.0)),
    ],
)
def test_animation_state(animation, progress, expected) -> None:
    assert animation_state(animation, progress) == pytest.approx(expected)


def test_burst_frame_count_rounds_float_noise() -> None:
    assert burst_frame_count(0.2, 30) == 6
    assert burst_frame_count(0.15, 30) == 5
    assert burst_frame_count(0.001, 30) == 1
