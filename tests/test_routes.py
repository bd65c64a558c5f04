"""Tests for route naming."""

import pytest

from pyButtonPlatform.routes import ROUTE_PREFIX, route_for, slugify


class TestRouteFor:

    def test_simple_name(self):
        assert route_for("Kitchen") == "/button-kitchen"

    def test_punctuation_and_spaces(self):
        assert route_for("Front Door!") == "/button-front-door-"

    def test_digits_kept(self):
        assert route_for("Room 101") == "/button-room-101"

    def test_one_dash_per_character(self):
        assert route_for("a  b") == "/button-a--b"

    def test_non_ascii_replaced(self):
        assert route_for("Küche") == "/button-k-che"

    def test_empty_name_is_unnamed_route(self):
        assert route_for("") == ROUTE_PREFIX == "/button-"

    def test_deterministic(self):
        assert route_for("Garage Door") == route_for("Garage Door")


class TestSlugify:

    @pytest.mark.parametrize(
        "name", ["Kitchen", "Front Door!", "Room 101", "a.b/c", "ÄÖÜ"]
    )
    def test_idempotent(self, name):
        slug = slugify(name)
        assert slugify(slug) == slug

    def test_only_slug_characters(self):
        slug = slugify("Hello, World! #42")
        assert all(c.isdigit() or "a" <= c <= "z" or c == "-" for c in slug)

    def test_punctuation_only_names_collide(self):
        assert slugify("Front Door!") == slugify("front door?")
