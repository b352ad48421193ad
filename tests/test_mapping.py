import pytest

from expense_ingest.mapping import (
    MappingEditor,
    column_label,
    load_saved_mapping,
    serialize_mapping,
)
from expense_ingest.mapping_store import (
    MAPPING_KEY,
    SettingsStore,
    load_column_mapping,
    load_table_index,
    save_column_mapping,
    save_table_index,
    state_root,
)
from expense_ingest.models import ColumnMapping, ExpenseField


def test_round_trip_reproduces_assignment_for_same_width():
    editor = MappingEditor(3, ["Description", "Date", "Amount"])
    editor.assign(ExpenseField.AMOUNT, 2)
    editor.assign(ExpenseField.DESCRIPTION, 0)
    saved = serialize_mapping(editor.to_mappings())

    assert saved[2] == {
        "sourceIndex": 2,
        "targetFields": ["amount"],
        "enabled": True,
        "preview": "Amount",
        "hidden": False,
    }

    restored = MappingEditor(3, saved=load_saved_mapping(saved, 3))
    assert restored.assigned_column(ExpenseField.AMOUNT) == 2
    assert restored.assigned_column(ExpenseField.DESCRIPTION) == 0
    assert restored.is_complete()


def test_saved_mapping_for_other_width_is_ignored():
    editor = MappingEditor(3)
    editor.assign(ExpenseField.AMOUNT, 2)
    saved = serialize_mapping(editor.to_mappings())
    assert load_saved_mapping(saved, 4) is None
    assert load_saved_mapping({"not": "a list"}, 3) is None
    assert load_saved_mapping([{"sourceIndex": "x"}], 1) is None


def test_legacy_single_field_entries_are_migrated_and_unknown_fields_dropped():
    raw = [
        {"sourceIndex": 0, "targetField": "expense_date", "enabled": True},
        {"sourceIndex": 1, "targetField": "skip", "enabled": False},
        {"sourceIndex": 2, "targetFields": ["amount", "currency", "amount"]},
    ]
    mappings = load_saved_mapping(raw, 3)
    assert mappings is not None
    assert mappings[0].target_fields == (ExpenseField.DATE,)
    assert mappings[1].target_fields == ()
    assert mappings[1].enabled is False
    assert mappings[2].target_fields == (ExpenseField.AMOUNT,)
    assert mappings[2].enabled is True


def test_assign_toggles_and_moves_field():
    editor = MappingEditor(3)
    editor.assign(ExpenseField.DATE, 0)
    editor.assign(ExpenseField.TIME, 0)
    assert editor.fields_for(0) == (ExpenseField.DATE, ExpenseField.TIME)
    editor.assign(ExpenseField.DATE, 1)
    assert editor.assigned_column(ExpenseField.DATE) == 1
    editor.assign(ExpenseField.DATE, 1)
    assert editor.assigned_column(ExpenseField.DATE) is None
    assert editor.missing_required() == [ExpenseField.AMOUNT, ExpenseField.DESCRIPTION]


def test_hidden_columns_lose_fields_and_labels_skip_them():
    editor = MappingEditor(4)
    editor.assign(ExpenseField.NOTES, 1)
    editor.hide_column(1)
    assert editor.assigned_column(ExpenseField.NOTES) is None
    assert editor.label_for(1) is None
    assert editor.label_for(2) == "B"
    assert editor.column_for_label("b") == 2
    assert editor.column_for_label("3") == 3
    with pytest.raises(ValueError):
        editor.assign(ExpenseField.NOTES, 1)
    with pytest.raises(IndexError):
        editor.assign(ExpenseField.NOTES, 7)

    out = editor.to_mappings()
    assert out[1].hidden is True and out[1].enabled is False
    editor.show_column(1)
    assert editor.label_for(1) == "B"


def test_move_column_changes_display_order_and_survives_reload():
    editor = MappingEditor(3, ["a", "b", "c"])
    editor.move_column(2, 0)
    assert editor.visible_columns() == [2, 0, 1]
    assert editor.label_for(2) == "A"
    mappings = editor.to_mappings()
    assert [m.source_index for m in mappings] == [2, 0, 1]
    assert MappingEditor(3, saved=mappings).visible_columns() == [2, 0, 1]


def test_column_labels_switch_to_numbers_after_z():
    assert column_label(0) == "A"
    assert column_label(25) == "Z"
    assert column_label(26) == "27"


def test_settings_store_round_trip(tmp_path):
    assert state_root() == (tmp_path / "state").resolve()
    store = SettingsStore()
    mappings = [
        ColumnMapping(source_index=0, target_fields=(ExpenseField.DESCRIPTION,)),
        ColumnMapping(source_index=1, target_fields=(ExpenseField.AMOUNT,)),
    ]
    save_column_mapping(store, mappings)
    assert store.path.exists()
    assert store.get(MAPPING_KEY)[0]["targetFields"] == ["description"]
    assert load_column_mapping(store, 2) == mappings
    assert load_column_mapping(store, 3) is None

    save_table_index(store, 2)
    assert load_table_index(store, 3) == 2
    assert load_table_index(store, 2) is None


def test_settings_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    store = SettingsStore(path)
    assert store.get(MAPPING_KEY) is None
    store.set("k", 1)
    assert SettingsStore(path).get("k") == 1
