import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from livescreen.modules.mapping import IdentityMapper, load_table, split_words


@pytest.mark.parametrize(
    "module_id,expected",
    [
        ("CartScreen", "cart-screen"),
        ("MemberAuthScreen", "member-auth-screen"),
        ("Cart", "cart-screen"),
        ("Home", "home-screen"),
        ("member_auth", "member-auth-screen"),
        ("Screen", "screen"),
        ("HTTPStatusScreen", "http-status-screen"),
    ],
)
def test_fallback_rule(module_id, expected):
    assert IdentityMapper().resolve(module_id) == expected


def test_static_table_wins():
    mapper = IdentityMapper({"HomeNavigation": "home-screen", "Odd": "custom-key"})

    assert mapper.resolve("HomeNavigation") == "home-screen"
    assert mapper.resolve("Odd") == "custom-key"
    assert mapper.is_static("Odd")
    assert not mapper.is_static("Cart")


def test_resolve_all():
    mapper = IdentityMapper({"HomeScreen": "home-screen"})

    assert mapper.resolve_all(["HomeScreen", "CartScreen"]) == {
        "HomeScreen": "home-screen",
        "CartScreen": "cart-screen",
    }


def test_verify_reports_collisions(mapper):
    """Test two module ids claiming one registry key are reported."""
    collisions = mapper.verify(["HomeScreen", "HomeNavigation", "Home", "CartScreen"])

    assert collisions == {"home-screen": ["Home", "HomeNavigation", "HomeScreen"]}


def test_verify_clean(mapper):
    assert mapper.verify(["CartScreen", "SettingsScreen"]) == {}


def test_split_words():
    assert split_words("ComponentsShowcaseScreen") == ["components", "showcase", "screen"]
    assert split_words("food-screen") == ["food", "screen"]


def test_packaged_table_loads(monkeypatch, tmp_path):
    monkeypatch.delenv("REGISTRY_MAP_FILE", raising=False)
    monkeypatch.chdir(tmp_path)

    mapper = IdentityMapper.from_file()

    assert mapper.resolve("ProductsNavigation") == "products-screen"
    assert mapper.suffix == "screen"


def test_explicit_table_file(tmp_path):
    table = tmp_path / "map.yaml"
    table.write_text("version: 1\nsuffix: page\nentries:\n  Landing: landing-page\n")

    mapper = IdentityMapper.from_file(str(table))

    assert mapper.resolve("Landing") == "landing-page"
    assert mapper.resolve("AboutPage") == "about-page"


def test_invalid_table_is_skipped(tmp_path, monkeypatch):
    """Test a table with a non-kebab key falls through to the next candidate."""
    monkeypatch.delenv("REGISTRY_MAP_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    table = tmp_path / "bad.yaml"
    table.write_text("entries:\n  Home: Not_Kebab\n")

    loaded = load_table(str(table))

    assert loaded.entries.get("HomeScreen") == "home-screen"


def test_env_table(tmp_path, monkeypatch):
    table = tmp_path / "env.yaml"
    table.write_text("entries:\n  Home: start-screen\n")
    monkeypatch.setenv("REGISTRY_MAP_FILE", str(table))

    assert IdentityMapper.from_file().resolve("Home") == "start-screen"
