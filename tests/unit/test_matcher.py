"""Cast qualification matcher."""

from steaks.staking.matcher import (
    DESCRIPTION_MAX_LENGTH,
    contains_keyphrase,
    extract_description,
    is_higher_channel,
    is_valid_cast_hash,
    normalize_hash,
    qualify,
)


class TestExtractDescription:
    def test_extracts_trimmed_text_after_keyphrase(self) -> None:
        assert extract_description("started aiming higher and it worked out!   got the job  ") == "got the job"

    def test_case_insensitive_and_flexible_whitespace(self) -> None:
        assert extract_description("STARTED  Aiming\thigher and it WORKED out! yes") == "yes"

    def test_keyphrase_mid_text(self) -> None:
        assert extract_description("gm. started aiming higher and it worked out! ran a marathon") == "ran a marathon"

    def test_missing_keyphrase(self) -> None:
        assert extract_description("aiming higher every day") is None

    def test_empty_description(self) -> None:
        assert extract_description("started aiming higher and it worked out!   ") is None

    def test_none_text(self) -> None:
        assert extract_description(None) is None

    def test_description_stops_at_newline(self) -> None:
        assert extract_description("started aiming higher and it worked out! line one\nline two") == "line one"

    def test_long_description_truncated(self) -> None:
        text = "started aiming higher and it worked out! " + "x" * 200
        description = extract_description(text)
        assert description == "x" * DESCRIPTION_MAX_LENGTH + "..."

    def test_exact_max_length_not_truncated(self) -> None:
        text = "started aiming higher and it worked out! " + "y" * DESCRIPTION_MAX_LENGTH
        assert extract_description(text) == "y" * DESCRIPTION_MAX_LENGTH

    def test_contains_keyphrase(self) -> None:
        assert contains_keyphrase("started aiming higher and it worked out! a")
        assert not contains_keyphrase("")


class TestChannel:
    def test_channel_id(self, make_post) -> None:
        assert is_higher_channel(make_post(channel_id="higher"))

    def test_parent_url(self, make_post) -> None:
        assert is_higher_channel(make_post(channel_id=None, parent_url="https://warpcast.com/~/channel/higher"))

    def test_other_channel(self, make_post) -> None:
        assert not is_higher_channel(make_post(channel_id="base", parent_url=None))


class TestQualify:
    def test_qualifies_in_channel(self, make_post) -> None:
        result = qualify(make_post())
        assert result.qualifies
        assert not result.text_only
        assert result.description == "shipped the thing"

    def test_keyphrase_outside_channel_is_text_only(self, make_post) -> None:
        result = qualify(make_post(channel_id=None))
        assert not result.qualifies
        assert result.text_only

    def test_channel_without_keyphrase(self, make_post) -> None:
        result = qualify(make_post(text="just vibes"))
        assert not result.qualifies
        assert not result.text_only


class TestCastHash:
    def test_valid(self) -> None:
        assert is_valid_cast_hash("0x" + "a" * 40)

    def test_wrong_length_or_prefix(self) -> None:
        assert not is_valid_cast_hash("0x" + "a" * 39)
        assert not is_valid_cast_hash("a" * 42)
        assert not is_valid_cast_hash(None)

    def test_normalize_adds_prefix_and_lowercases(self) -> None:
        assert normalize_hash(" ABCDEF ") == "0xabcdef"
        assert normalize_hash("0xABC") == "0xabc"

    def test_normalize_rejects_non_hex(self) -> None:
        assert normalize_hash("not-a-hash") is None
        assert normalize_hash("") is None
        assert normalize_hash(None) is None
