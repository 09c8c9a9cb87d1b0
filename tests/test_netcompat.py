from winewarden.netcompat import DestinationSet, NetCompat


def test_remember_deduplicates():
    destinations = DestinationSet()
    destinations.remember("example.com")
    destinations.remember("example.com")
    destinations.remember("cdn.example.com")
    assert destinations.hosts == {"example.com", "cdn.example.com"}


def test_net_compat_starts_empty_and_is_independent():
    first = NetCompat()
    second = NetCompat()
    first.destinations.remember("example.com")
    assert first.destinations.hosts == {"example.com"}
    assert second.destinations.hosts == set()