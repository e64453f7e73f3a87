"""Tests for the decode cascade (vinylscout/acquisition/decode.py).

Pure functions, no API keys or network. Each tier is reached with the kind
of output Gemini actually produces: fences, chatty prose, cut-off JSON.
"""

import json

import pytest
from pydantic import BaseModel

from vinylscout.acquisition import DecodedResult, DecodeFailure, DecodeTier, ResponseShape, decode
from vinylscout.acquisition.decode import clean_text
from vinylscout.models.contracts import Album, MusicIntent
from vinylscout.services.music_intent import INTENT_SHAPE
from vinylscout.services.vinyl_scan import SCAN_SHAPE


class Tag(BaseModel):
    t: int


class TaggedAlbum(Album):
    tags: list[Tag] = []


class TaggedScan(BaseModel):
    albums: list[TaggedAlbum]


NESTED_SCAN_SHAPE = ResponseShape(TaggedScan, records_field="albums")

_INTENT = {
    "genres": ["Jazz"],
    "styles": ["Bossa Nova"],
    "mood_description": "noche tranquila",
    "energy": "low",
    "keywords": [],
}


def _album(position: int, artist: str, title: str, **extra) -> dict:
    return {"position": position, "artist": artist, "title": title, **extra}


def _scan_json(*albums: dict) -> str:
    return json.dumps({"albums": list(albums)})


class TestCleanText:
    def test_strips_closed_fence(self):
        """A closed code fence is removed."""
        assert clean_text('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_unclosed_fence(self):
        """An unclosed code fence is removed too."""
        assert clean_text('```json\n{"a": 1') == '{"a": 1'

    def test_strips_control_characters_but_keeps_newlines(self):
        """Control characters go, newlines stay."""
        assert clean_text('{"a":\n"b\x07c"}\x00') == '{"a":\n"bc"}'


class TestStrictAndCleanTiers:
    def test_valid_json_is_tier_0(self):
        """Valid JSON decodes at the strict tier."""
        result = decode(_scan_json(_album(1, "Miles Davis", "Kind of Blue")), SCAN_SHAPE)
        assert isinstance(result, DecodedResult)
        assert result.tier is DecodeTier.STRICT
        assert result.value.albums[0].artist == "Miles Davis"

    def test_structured_value_is_tier_0(self):
        """An already-structured value is validated directly."""
        result = decode({"albums": []}, SCAN_SHAPE)
        assert result.tier is DecodeTier.STRICT
        assert result.value.albums == []

    def test_structured_value_that_fails_validation(self):
        """A structured value that fails validation is a failure, not a retry."""
        result = decode({"unexpected": 1}, SCAN_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert result.tiers_tried == (DecodeTier.STRICT,)
        assert "albums" in result.error

    def test_bare_array_for_record_shape(self):
        """A bare array is accepted for record-list shapes."""
        result = decode(json.dumps([_album(1, "A", "T")]), SCAN_SHAPE)
        assert result.tier is DecodeTier.STRICT
        assert len(result.value.albums) == 1

    def test_fenced_intent_is_tier_1(self):
        """A fenced intent decodes at tier 1 with exactly the fields it carried."""
        text = "```json\n" + json.dumps(_INTENT) + "\n```"
        result = decode(text, INTENT_SHAPE)
        assert isinstance(result, DecodedResult)
        assert result.tier is DecodeTier.FENCE_STRIPPED
        assert result.value == MusicIntent(**_INTENT)
        assert result.value.year_start is None

    def test_control_character_inside_string_is_tier_1(self):
        """A raw control character inside a string is stripped at tier 1."""
        text = _scan_json(_album(1, "Bj\x07rk", "Post"))
        result = decode(text, SCAN_SHAPE)
        assert result.tier is DecodeTier.FENCE_STRIPPED
        assert result.value.albums[0].artist == "Bjrk"


class TestBraceSpanTier:
    def test_prose_around_object(self):
        """Prose around the object is cut away at the span tier."""
        text = "Claro, aquí tienes: " + _scan_json(_album(1, "A", "T")) + " ¡Disfruta!"
        result = decode(text, SCAN_SHAPE)
        assert result.tier is DecodeTier.BRACE_SPAN
        assert result.value.albums[0].title == "T"

    def test_bare_array_inside_prose(self):
        """A bare record array inside prose is found at the span tier."""
        albums = [_album(1, "A", "T"), _album(2, "B", "U")]
        text = f"Resultado: {json.dumps(albums)} fin"
        result = decode(text, SCAN_SHAPE)
        assert result.tier is DecodeTier.BRACE_SPAN
        assert [a.position for a in result.value.albums] == [1, 2]

    def test_stray_record_object_is_not_an_empty_shelf(self):
        """A lone album object must not validate as a scan with zero albums."""
        text = "Solo veo esto: " + json.dumps(_album(1, "A", "T"))
        result = decode(text, SCAN_SHAPE)
        assert result.tier is DecodeTier.FIELD_PATTERNS
        assert len(result.value.albums) == 1


class TestTruncationRepairTier:
    _COMPLETE = [
        _album(1, "Daft Punk", "Discovery", year=2001),
        _album(2, "Brace } Band", "Quote \" Title"),
    ]

    def _cut(self) -> str:
        full = _scan_json(*self._COMPLETE, _album(3, "Cut", "Off"))
        return full[: full.index('"Cut"') + 3]

    def test_cut_mid_record_keeps_complete_records(self):
        """Output cut mid-record keeps every complete record before the cut."""
        result = decode(self._cut(), SCAN_SHAPE, truncated=True)
        assert isinstance(result, DecodedResult)
        assert result.tier is DecodeTier.TRUNCATION_REPAIRED
        assert [a.model_dump(exclude_none=True) for a in result.value.albums] == self._COMPLETE

    def test_unbalanced_text_is_repaired_without_finish_reason(self):
        """Unbalanced brackets trigger repair even without MAX_TOKENS."""
        result = decode(self._cut(), SCAN_SHAPE)
        assert result.tier is DecodeTier.TRUNCATION_REPAIRED
        assert len(result.value.albums) == 2

    def test_cut_inside_fence(self):
        """Repair works on output cut inside an unclosed fence."""
        result = decode("```json\n" + self._cut(), SCAN_SHAPE, truncated=True)
        assert result.tier is DecodeTier.TRUNCATION_REPAIRED
        assert len(result.value.albums) == 2

    def test_nothing_complete_before_cut(self):
        """No complete record before the cut is a failure."""
        result = decode('{"albums": [{"position": 1, "art', SCAN_SHAPE, truncated=True)
        assert isinstance(result, DecodeFailure)
        assert DecodeTier.TRUNCATION_REPAIRED in result.tiers_tried

    def test_nested_object_in_tail_record_is_not_a_record_end(self):
        """A finished nested object inside the cut record must not be salvaged."""
        text = '{"albums": [{"position": 1, "artist": "A", "title": "T", "tags": [{"t": 1}'
        result = decode(text, NESTED_SCAN_SHAPE, truncated=True)
        assert isinstance(result, DecodeFailure)
        assert DecodeTier.TRUNCATION_REPAIRED in result.tiers_tried

    def test_nested_objects_in_complete_records_are_kept(self):
        """Only ends of the records array count as cut points."""
        text = (
            '{"albums": [{"position": 1, "artist": "A", "title": "T", "tags": [{"t": 1}]}, '
            '{"position": 2, "artist": "B", "title": "U", "tags": [{"t": 2}'
        )
        result = decode(text, NESTED_SCAN_SHAPE, truncated=True)
        assert result.tier is DecodeTier.TRUNCATION_REPAIRED
        assert [a.position for a in result.value.albums] == [1]
        assert result.value.albums[0].tags == [Tag(t=1)]


class TestFieldPatternTier:
    def test_recovers_only_well_formed_fragments(self):
        """Only fragments that validate against the record model are kept."""
        text = (
            "Veo estos discos: "
            '{"position": 1, "artist": "Miles Davis", "title": "Kind of Blue", "year": 1959} '
            'y también {"position": 2, "artist": "Sin título"} '
            'y {"position": "x", "artist": "Bad", "title": "Type"} fin'
        )
        result = decode(text, SCAN_SHAPE)
        assert isinstance(result, DecodedResult)
        assert result.tier is DecodeTier.FIELD_PATTERNS
        assert len(result.value.albums) == 1
        album = result.value.albums[0]
        assert (album.position, album.artist, album.title, album.year) == (
            1,
            "Miles Davis",
            "Kind of Blue",
            1959,
        )

    def test_malformed_value_rejects_the_fragment(self):
        """A value that is not a complete JSON scalar is never cut down to a prefix."""
        text = 'prose {"position": 1, "artist": "A", "title": "T", "year": 19x9} prose'
        result = decode(text, SCAN_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert DecodeTier.FIELD_PATTERNS in result.tiers_tried

    def test_malformed_fragment_does_not_block_good_ones(self):
        """Good fragments survive next to a malformed one."""
        text = (
            '{"position": 1, "artist": "A", "title": "T", "year": 19x9} '
            '{"position": 2, "artist": "B", "title": "U", "year": 1972}'
        )
        result = decode(text, SCAN_SHAPE)
        assert result.tier is DecodeTier.FIELD_PATTERNS
        assert [(a.position, a.year) for a in result.value.albums] == [(2, 1972)]

    def test_not_used_for_single_object_shapes(self):
        """Field scraping is skipped for shapes without a record list."""
        result = decode('{"genres": ["Jazz"]', INTENT_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert DecodeTier.FIELD_PATTERNS not in result.tiers_tried


class TestDecodeFailure:
    def test_prose_only(self):
        """Prose with no structure fails every applicable tier."""
        text = "Lo siento, no puedo ver la imagen."
        result = decode(text, SCAN_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert result.tiers_tried == (
            DecodeTier.STRICT,
            DecodeTier.BRACE_SPAN,
            DecodeTier.TRUNCATION_REPAIRED,
            DecodeTier.FIELD_PATTERNS,
        )
        assert result.preview == text

    def test_deep_nesting_does_not_raise(self):
        """Nesting past the recursion limit comes back as a failure."""
        result = decode("[" * 200000, SCAN_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert DecodeTier.STRICT in result.tiers_tried

    def test_preview_is_bounded(self):
        """The failure preview is capped at 800 characters."""
        result = decode("x" * 5000, SCAN_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert len(result.preview) == 800

    @pytest.mark.parametrize("payload", [None, "", "   \n"])
    def test_empty_payload(self, payload):
        """None and blank text are reported as an empty payload."""
        result = decode(payload, SCAN_SHAPE)
        assert isinstance(result, DecodeFailure)
        assert result.error == "empty payload"


class TestIdempotence:
    @pytest.mark.parametrize(
        "text",
        [
            _scan_json(_album(1, "A", "T")),
            "```\n" + _scan_json(_album(1, "A", "T")) + "\n```",
            '{"albums": [{"position": 1, "artist": "A", "title": "T"}, {"position": 2',
            'noise {"position": 4, "artist": "D", "title": "W"} noise',
        ],
    )
    def test_same_text_same_result(self, text):
        """Decoding the same text twice gives the same result."""
        first = decode(text, SCAN_SHAPE)
        second = decode(text, SCAN_SHAPE)
        assert first == second
        assert first.tier == second.tier
