from modifiers import BlackAndWhite, Orientation, Resize, Scale, Trim
from modifiers.grammar import parse_options


def test_tokens_become_modifiers_in_order():
    assert parse_options("bw-olandscape-s400x400-m20") == [
        BlackAndWhite(),
        Orientation(portrait=False),
        Scale(aspect=1.0, margin_percent=20),
    ]


def test_parsing_is_deterministic():
    options = "tr-oportrait-rw300-s1600x900"
    assert parse_options(options) == parse_options(options)


def test_scale_without_margin():
    assert parse_options("s400x400") == [Scale(aspect=1.0, margin_percent=0)]


def test_margin_binds_regardless_of_position():
    assert parse_options("m20-s400x400") == parse_options("s400x400-m20")
    assert parse_options("m20-s400x400")[0].margin_percent == 20


def test_scale_aspect_uses_longer_over_shorter_side():
    (portrait,) = parse_options("s300x600")
    (landscape,) = parse_options("s600x300")
    assert portrait.aspect == landscape.aspect == 2.0
    assert portrait.crop is True


def test_resize_tokens():
    assert parse_options("rw200-rh100") == [
        Resize(height=False, pixels=200),
        Resize(height=True, pixels=100),
    ]


def test_trim_and_orientation_tokens():
    assert parse_options("tr-oportrait") == [Trim(), Orientation(portrait=True)]


def test_unknown_tokens_are_dropped():
    assert parse_options("foo-bw-s400-x-rz10") == [BlackAndWhite()]


def test_no_valid_options():
    assert parse_options("foo-bar") == []
    assert parse_options("") == []
    assert parse_options("s0x400") == []


def test_duplicate_scale_tokens_share_first_margin():
    first, second = parse_options("s400x400-s300x200-m5-m10")
    assert first == Scale(aspect=1.0, margin_percent=5)
    assert second == Scale(aspect=1.5, margin_percent=5)
