"""Tests for game process classification."""

import pytest

from gamebudget.classifier import ProcessClassifier, display_name_from_process


@pytest.fixture
def classifier():
    return ProcessClassifier()


class TestClassify:
    """Tests for ProcessClassifier.classify."""

    def test_known_game(self, classifier):
        assert classifier.classify("dota2.exe", "C:\\Games\\dota2.exe") == "Dota 2"

    def test_known_game_without_path(self, classifier):
        assert classifier.classify("minecraft.exe") == "Minecraft"

    def test_unknown_process(self, classifier):
        assert classifier.classify("notepad.exe", "C:\\Windows\\notepad.exe") is None

    def test_exact_match_only(self, classifier):
        """Known-games lookup is an exact, case-sensitive name match."""
        assert classifier.classify("Dota2.exe", "C:\\Games\\Dota2.exe") is None

    def test_exclusion_beats_known_games(self, classifier):
        """steam.exe is in both tables; the exclusion wins."""
        assert classifier.classify("steam.exe", "C:\\Steam\\steam.exe") is None

    def test_exclusion_beats_library_path(self, classifier):
        path = "C:\\Program Files\\Steam\\steamapps\\common\\wallpaper_engine\\wallpaper64.exe"
        assert classifier.classify("wallpaper64.exe", path) is None

    @pytest.mark.parametrize("path", [
        "C:\\Program Files (x86)\\Steam\\steamapps\\common\\Hollow Knight\\hollow_knight.exe",
        "/home/anders/.local/share/Steam/steamapps/common/Hollow Knight/hollow_knight.exe",
    ])
    def test_library_path_heuristic(self, classifier, path):
        assert classifier.classify("hollow_knight.exe", path) == "Hollow Knight"

    def test_known_name_wins_over_synthesized(self, classifier):
        path = "D:\\Steam\\steamapps\\common\\dota 2 beta\\game\\bin\\win64\\dota2.exe"
        assert classifier.classify("dota2.exe", path) == "Dota 2"

    def test_is_monitored(self, classifier):
        assert classifier.is_monitored("valorant.exe") is False
        assert classifier.is_monitored("Valorant.exe") is True


class TestRuntimeTables:
    """Tests for registering games and exclusions at runtime."""

    def test_add_game(self, classifier):
        assert classifier.classify("factorio.exe") is None
        classifier.add_game("factorio.exe", "Factorio")
        assert classifier.classify("factorio.exe") == "Factorio"
        assert "Factorio" in classifier.known_games()

    def test_add_exclusion(self, classifier):
        classifier.add_exclusion("minecraft.exe")
        assert classifier.classify("minecraft.exe") is None
        assert classifier.is_excluded("minecraft.exe")

    def test_constructor_extensions(self):
        classifier = ProcessClassifier(
            known_games={"factorio": "Factorio"},
            excluded=["overlay.exe"],
            library_markers=["SteamLibrary"],
        )
        assert classifier.classify("factorio", "/opt/factorio/bin/factorio") == "Factorio"
        assert classifier.classify("overlay.exe", "D:\\SteamLibrary\\overlay.exe") is None
        assert classifier.classify("celeste.exe", "D:\\SteamLibrary\\Celeste\\celeste.exe") == "Celeste"

    def test_instances_do_not_share_tables(self):
        a = ProcessClassifier()
        b = ProcessClassifier()
        a.add_game("factorio.exe", "Factorio")
        assert b.classify("factorio.exe") is None


class TestDisplayName:
    """Tests for display names synthesized from executable names."""

    @pytest.mark.parametrize("process_name,expected", [
        ("hollow_knight.exe", "Hollow Knight"),
        ("dead-cells.exe", "Dead Cells"),
        ("Celeste.exe", "Celeste"),
        ("terraria", "Terraria"),
        ("stardew_valley.x86_64", "Stardew Valley"),
        ("my__odd--game.exe", "My Odd Game"),
        ("cyberPunk2077.exe", "CyberPunk2077"),
    ])
    def test_display_name(self, process_name, expected):
        assert display_name_from_process(process_name) == expected
