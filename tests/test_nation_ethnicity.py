"""Tests for the nation -> ethnic category table."""

import logging

import pytest

from nation_ethnicity import (
    BASE_TABLE,
    EthnicCategory,
    InvalidEthnicCategoryError,
    NationEthnicTable,
    UnknownNationError,
    normalize_nation,
)


class TestEthnicCategory:
    """Tests for the closed category set."""

    def test_has_fourteen_categories(self):
        """There are exactly fourteen categories."""
        assert len(EthnicCategory) == 14

    def test_from_name_exact_match(self):
        """Folder names map to categories."""
        assert EthnicCategory.from_name("Central European") is EthnicCategory.CENTRAL_EUROPEAN
        assert EthnicCategory.from_name("SAMed") is EthnicCategory.SAMED

    def test_from_name_is_case_sensitive(self):
        """Wrong case or unknown names give None."""
        assert EthnicCategory.from_name("caucasian") is None
        assert EthnicCategory.from_name("Klingon") is None
        assert EthnicCategory.from_name(None) is None

    def test_base_table_only_uses_known_categories(self):
        """The base table only holds known categories."""
        assert all(isinstance(c, EthnicCategory) for c in BASE_TABLE.values())


class TestNormalizeNation:
    """Tests for normalize_nation()."""

    def test_codes_are_uppercased(self):
        """Codes are trimmed and uppercased."""
        assert normalize_nation("ENG") == "ENG"
        assert normalize_nation(" eng ") == "ENG"

    def test_names_map_to_codes(self):
        """Nation names and aliases map to codes."""
        assert normalize_nation("England") == "ENG"
        assert normalize_nation("republic of ireland") == "IRL"
        assert normalize_nation("Côte d'Ivoire") == "CIV"
        assert normalize_nation("Holland") == "NED"

    def test_dual_nationality_keeps_first(self):
        """Dual nationalities keep the first nation."""
        assert normalize_nation("ENG / IRL") == "ENG"
        assert normalize_nation("FRA (ALG)") == "FRA"
        assert normalize_nation("Brazil, Portugal") == "BRA"

    def test_unknown_text_returned_as_is(self):
        """Unknown text comes back unchanged."""
        assert normalize_nation("Atlantis") == "Atlantis"

    def test_empty(self):
        """Blank input normalizes to an empty string."""
        assert normalize_nation("") == ""
        assert normalize_nation(None) == ""
        assert normalize_nation("   ") == ""


class TestResolve:
    """Tests for NationEthnicTable.resolve()."""

    def test_base_table_lookup(self):
        """Codes and names resolve through the base table."""
        table = NationEthnicTable()
        assert table.resolve("ENG") is EthnicCategory.CAUCASIAN
        assert table.resolve("BRA") is EthnicCategory.SOUTH_AMERICAN
        assert table.resolve("Japan") is EthnicCategory.ASIAN

    def test_unknown_code_raises(self):
        """Unknown codes raise UnknownNationError."""
        table = NationEthnicTable()
        with pytest.raises(UnknownNationError) as exc_info:
            table.resolve("ZZZ")
        assert exc_info.value.codes == ["ZZZ"]

    def test_override_checked_before_base(self):
        """Overrides win over the base table."""
        table = NationEthnicTable(overrides={"ENG": "African"})
        assert table.resolve("ENG") is EthnicCategory.AFRICAN
        assert table.resolve("SCO") is EthnicCategory.CAUCASIAN

    def test_override_adds_new_code(self):
        """Overrides can add codes the base table lacks."""
        table = NationEthnicTable()
        table.apply_overrides({"ZZZ": "Seasian"})
        assert table.resolve("zzz") is EthnicCategory.SEASIAN
        assert "ZZZ" in table

    def test_custom_base_table(self):
        """A custom base table replaces the built-in one."""
        table = NationEthnicTable(base={"AAA": EthnicCategory.MESA})
        assert table.resolve("AAA") is EthnicCategory.MESA
        with pytest.raises(UnknownNationError):
            table.resolve("ENG")


class TestApplyOverrides:
    """Tests for NationEthnicTable.apply_overrides()."""

    def test_invalid_entry_applies_nothing(self):
        """One invalid entry leaves the previous overrides in place."""
        table = NationEthnicTable()
        table.apply_overrides({"ENG": "Italmed"})

        with pytest.raises(InvalidEthnicCategoryError) as exc_info:
            table.apply_overrides(
                {"SCO": "Scandinavian", "WAL": "Welsh", "NIR": "African"}
            )

        assert exc_info.value.code == "WAL"
        assert exc_info.value.value == "Welsh"
        # Previous snapshot untouched, none of the new entries applied
        assert dict(table.overrides) == {"ENG": EthnicCategory.ITALMED}
        assert table.resolve("SCO") is EthnicCategory.CAUCASIAN
        assert table.resolve("NIR") is EthnicCategory.CAUCASIAN

    def test_replaces_wholesale(self):
        """New overrides replace the old set entirely."""
        table = NationEthnicTable()
        table.apply_overrides({"ENG": "Italmed"})
        table.apply_overrides({"SCO": "Scandinavian"})

        assert table.resolve("ENG") is EthnicCategory.CAUCASIAN
        assert table.resolve("SCO") is EthnicCategory.SCANDINAVIAN
        assert "ENG" not in table.overrides

    def test_colliding_keys_warn_and_last_wins(self, caplog):
        """Code and name forms of the same nation with different categories are reported."""
        table = NationEthnicTable()
        with caplog.at_level(logging.WARNING):
            table.apply_overrides({"ENG": "African", "England": "Asian"})

        assert dict(table.overrides) == {"ENG": EthnicCategory.ASIAN}
        assert any("ENG" in record.getMessage() for record in caplog.records)

    def test_duplicate_keys_with_same_category_are_quiet(self, caplog):
        """Agreeing duplicates do not warn."""
        table = NationEthnicTable()
        with caplog.at_level(logging.WARNING):
            table.apply_overrides({"ENG": "African", "england": "African"})

        assert dict(table.overrides) == {"ENG": EthnicCategory.AFRICAN}
        assert not caplog.records

    def test_empty_overrides_clear_layer(self):
        """Empty overrides clear the layer."""
        table = NationEthnicTable(overrides={"ENG": "Italmed"})
        table.apply_overrides({})
        assert len(table.overrides) == 0

    def test_overrides_are_read_only(self):
        """The overrides view cannot be modified."""
        table = NationEthnicTable(overrides={"ENG": "Italmed"})
        with pytest.raises(TypeError):
            table.overrides["SCO"] = EthnicCategory.AFRICAN

    def test_error_message_lists_valid_categories(self):
        """The error message names the valid categories."""
        table = NationEthnicTable()
        with pytest.raises(InvalidEthnicCategoryError, match="YugoGreek"):
            table.apply_overrides({"KVX": "Balkan"})
