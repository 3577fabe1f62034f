"""Property tests for identity rotation and the stealth script."""

from __future__ import annotations

from collections import Counter

from hypothesis import given, settings
from hypothesis import strategies as st

from imgharvest.browser.identity import DEFAULT_IDENTITIES, Identity, IdentityProvider
from imgharvest.browser.stealth import build_stealth_script


identities = st.builds(
    Identity,
    id=st.from_regex(r"id[0-9]{1,3}", fullmatch=True),
    user_agent=st.sampled_from([i.user_agent for i in DEFAULT_IDENTITIES]),
    viewport_width=st.integers(min_value=320, max_value=3840),
    viewport_height=st.integers(min_value=320, max_value=2160),
    locale=st.sampled_from(["en-US", "en-GB", "de-DE", "fr-FR"]),
    timezone_id=st.sampled_from(["America/New_York", "Europe/London", "Europe/Berlin"]),
)


@settings(max_examples=100)
@given(pool=st.lists(identities, min_size=1, max_size=6), calls=st.integers(min_value=0, max_value=60))
def test_rotation_is_balanced(pool: list[Identity], calls: int) -> None:
    provider = IdentityProvider(pool)
    counts = Counter(id(provider.next()) for _ in range(calls))
    if calls >= len(pool):
        assert len(counts) == len(pool)
    assert not counts or max(counts.values()) - min(counts.values()) <= 1


@settings(max_examples=100)
@given(pool=st.lists(identities, min_size=1, max_size=6), offset=st.integers(min_value=0, max_value=30))
def test_rotation_is_periodic(pool: list[Identity], offset: int) -> None:
    provider = IdentityProvider(pool)
    for _ in range(offset):
        provider.next()
    cycle = [provider.next() for _ in range(len(pool))]
    assert [provider.next() for _ in range(len(pool))] == cycle


@settings(max_examples=100)
@given(identity=identities)
def test_stealth_script_matches_identity(identity: Identity) -> None:
    script = build_stealth_script(identity)
    assert f'"{identity.locale}"' in script
    assert "__CONFIG__" not in script
    assert "webdriver" in script
