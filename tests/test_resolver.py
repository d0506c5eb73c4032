"""Tests for reference normalisation and resolution."""

import pytest

from q3graph.errors import AmbiguousReferenceError
from q3graph.models import ResolutionStatus
from q3graph.resolver import (
    FileCorpus,
    ReferenceResolver,
    expand_wildcards,
    normalize_reference,
    resolve,
    type_group,
)


@pytest.mark.parametrize("raw,expected", [
    ("textures/base/Wall.TGA", "textures/base/wall"),
    ("textures//base\\wall.jpg", "textures/base/wall"),
    ("textures/base/wall", "textures/base/wall"),
    ("models/v1.0/head", "models/v1.0/head"),
    ("", ""),
])
def test_normalize_reference(raw, expected):
    assert normalize_reference(raw) == expected


def test_type_group():
    assert type_group("sound/a.WAV")[0] == "audio"
    assert type_group("maps/q3dm1.bsp")[0] == "file"
    assert type_group("scripts/a.shader")[0] == "source"
    assert type_group("textures/a")[0] == "image"
    with pytest.raises(AmbiguousReferenceError, match="File type not found"):
        type_group("textures/a.xyz")


class TestResolve:
    """Tests for single-reference resolution."""

    def test_single_substring_match(self):
        corpus = FileCorpus(["/game/Textures/Base/Floor.TGA"])
        result = resolve("textures/base/floor", corpus)

        assert result.status is ResolutionStatus.RESOLVED
        assert result.path == "/game/Textures/Base/Floor.TGA"
        assert result.assumed_image is False

    def test_exact_path(self):
        corpus = FileCorpus(["/game/a.tga", "/game/a.jpg"])
        assert resolve("/game/a.jpg", corpus).path == "/game/a.jpg"

    def test_not_found(self):
        result = resolve("sound/missing.wav", FileCorpus(["/game/sound/other.wav"]))
        assert result.status is ResolutionStatus.NOT_FOUND
        assert result.path is None

    def test_found_in_base(self):
        base = FileCorpus(["/base/music/loop.wav"])
        result = resolve("music/loop.wav", FileCorpus(["/game/music/intro.wav"]), base)
        assert result.status is ResolutionStatus.BASE
        assert not result.resolved

    def test_empty_reference(self):
        with pytest.raises(ValueError):
            resolve("", FileCorpus(["/game/a.tga"]))

    def test_extension_group_picks_audio(self):
        corpus = FileCorpus(["textures/foo.tga", "textures/foo.wav"])
        result = resolve("textures/foo.wav", corpus)
        assert result.path == "textures/foo.wav"

    def test_extensionless_defaults_to_image(self):
        corpus = FileCorpus(["textures/foo.tga", "textures/foo.wav"])
        result = resolve("textures/foo", corpus)

        assert result.path == "textures/foo.tga"
        assert result.type_group == "image"
        assert result.assumed_image is True

    def test_extensionless_without_image_is_ambiguous(self):
        corpus = FileCorpus(["textures/foo.wav", "textures/foo.md3"])
        with pytest.raises(AmbiguousReferenceError) as excinfo:
            resolve("textures/foo", corpus)

        assert excinfo.value.reference == "textures/foo"
        assert excinfo.value.type_group == "image"
        assert "textures/foo" in str(excinfo.value)
        assert "image" in str(excinfo.value)

    def test_two_images_are_ambiguous(self):
        corpus = FileCorpus(["textures/foo.tga", "textures/foo.jpg"])
        with pytest.raises(AmbiguousReferenceError) as excinfo:
            resolve("textures/foo", corpus)
        assert sorted(excinfo.value.candidates) == ["textures/foo.jpg", "textures/foo.tga"]

    def test_explicit_extension_names_one_file(self):
        corpus = FileCorpus(["textures/foo.tga", "textures/foo.jpg"])
        assert resolve("textures/foo.jpg", corpus).path == "textures/foo.jpg"

    def test_unknown_extension_with_many_matches(self):
        corpus = FileCorpus(["textures/foo.tga", "textures/foo.wav"])
        with pytest.raises(AmbiguousReferenceError) as excinfo:
            resolve("textures/foo.xyz", corpus)
        assert excinfo.value.type_group is None

    def test_prefix_collision(self):
        corpus = FileCorpus(["/game/models/tree.md3", "/game/models/tree_bark.jpg"])

        assert resolve("models/tree.md3", corpus).path == "/game/models/tree.md3"
        assert resolve("models/tree_bark", corpus).path == "/game/models/tree_bark.jpg"
        with pytest.raises(AmbiguousReferenceError):
            resolve("models/tree", corpus)


def test_resolver_is_idempotent():
    corpus = FileCorpus(["/game/sound/a.wav", "/game/sound/a.tga"])
    resolver = ReferenceResolver(corpus)

    first = resolver.resolve("sound/a.wav")
    assert resolver.resolve("sound/a.wav") is first
    assert resolve("sound/a.wav", corpus) == first


def test_expand_wildcards():
    corpus = FileCorpus([
        "/game/sprites/Plasma1.tga",
        "/game/sprites/balloon3.tga",
        "/game/sprites/sub/deep.tga",
        "/game/models/a.md3",
    ])
    expanded = expand_wildcards(["models/a.md3", "sprites/*.TGA", "models/a.md3"], corpus)

    assert expanded == ["models/a.md3", "/game/sprites/Plasma1.tga", "/game/sprites/balloon3.tga"]


def test_expand_wildcards_no_match():
    assert expand_wildcards(["nothing/*.wav"], FileCorpus(["/game/a.wav"])) == []
