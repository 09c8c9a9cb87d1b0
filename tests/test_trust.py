import pytest

from winewarden.trust import TrustSignal, TrustTier


@pytest.mark.parametrize(
    ("tier", "label"),
    [
        (TrustTier.GREEN, "trusted"),
        (TrustTier.YELLOW, "partial"),
        (TrustTier.RED, "restricted"),
    ],
)
def test_calm_label(tier, label):
    assert tier.calm_label() == label


@pytest.mark.parametrize("text", ["green", "GREEN", "Green"])
def test_parse_ignores_case(text):
    assert TrustTier.parse(text) is TrustTier.GREEN


def test_parse_unknown_tier():
    with pytest.raises(ValueError, match="unknown trust tier: purple"):
        TrustTier.parse("purple")


@pytest.mark.parametrize(
    ("text", "display"),
    [("RED", "red"), ("Yellow", "yellow"), ("green", "green")],
)
def test_display_is_lowercase_name(text, display):
    assert str(TrustTier.parse(text)) == display
    assert f"{TrustTier.parse(text)}" == display


@pytest.mark.parametrize(
    ("tier", "message"),
    [
        (TrustTier.GREEN, "This game ran with full trust."),
        (TrustTier.YELLOW, "This game ran with partial trust."),
        (TrustTier.RED, "This game ran with strict protection."),
    ],
)
def test_signal_from_tier(tier, message):
    signal = TrustSignal.from_tier(tier)
    assert signal.tier is tier
    assert signal.message == message


def test_signal_dict_form():
    signal = TrustSignal.from_tier(TrustTier.YELLOW)
    assert signal.to_dict() == {
        "tier": "yellow",
        "message": "This game ran with partial trust.",
    }


def test_signal_round_trip():
    signal = TrustSignal.from_tier(TrustTier.RED)
    assert TrustSignal.from_dict(signal.to_dict()) == signal


def test_signal_rejects_bad_tier():
    with pytest.raises(ValueError):
        TrustSignal.from_dict({"tier": "Purple", "message": "x"})


def test_signal_rejects_missing_message():
    with pytest.raises(ValueError):
        TrustSignal.from_dict({"tier": "red"})