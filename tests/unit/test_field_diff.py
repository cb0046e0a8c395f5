"""
Unit tests for build_field_diff / should_filter_change.

纯函数，不需要数据库。
"""
from datetime import date
from decimal import Decimal

from childhealth.audit.diff import DEFAULT_EXCLUDE_KEYS, build_field_diff, should_filter_change


EMPTY_REFRACTION = {
    'od': {'axis': None, 'sphere': None, 'cylinder': None},
    'os': {'axis': None, 'sphere': None, 'cylinder': None},
}


class TestBuildFieldDiffBasics:

    def test_changed_date(self):
        changes = build_field_diff({'visit_date': '2026-01-15'}, {'visit_date': '2026-01-16'})
        assert changes == {'visit_date': {'before': '2026-01-15', 'after': '2026-01-16'}}

    def test_whitespace_only_edit_is_no_change(self):
        assert build_field_diff({'notes': 'Follow up'}, {'notes': '  Follow up  '}) == {}

    def test_no_op_update_returns_empty(self):
        current = {'weight_value': 24.5, 'visit_date': '2026-01-15', 'title': 'Checkup'}
        payload = {'weight_value': Decimal('24.50'), 'visit_date': date(2026, 1, 15), 'title': 'Checkup'}
        assert build_field_diff(current, payload) == {}

    def test_keys_absent_from_payload_are_ignored(self):
        current = {'notes': 'old', 'location': 'Clinic A'}
        changes = build_field_diff(current, {'location': 'Clinic B'})
        assert list(changes) == ['location']

    def test_order_follows_payload(self):
        current = {'a': 1, 'b': 1, 'c': 1}
        changes = build_field_diff(current, {'c': 2, 'a': 2, 'b': 2})
        assert list(changes) == ['c', 'a', 'b']

    def test_raw_values_are_recorded(self):
        changes = build_field_diff({'weight_value': 24.5}, {'weight_value': Decimal('25.00')})
        assert changes['weight_value'] == {'before': 24.5, 'after': Decimal('25.00')}


class TestBuildFieldDiffEmptyValues:

    def test_value_to_empty_string_records_none(self):
        changes = build_field_diff({'notes': 'Follow up'}, {'notes': ''})
        assert changes == {'notes': {'before': 'Follow up', 'after': None}}

    def test_value_to_none(self):
        changes = build_field_diff({'notes': 'Follow up'}, {'notes': None})
        assert changes == {'notes': {'before': 'Follow up', 'after': None}}

    def test_missing_current_key_records_before_none(self):
        changes = build_field_diff({}, {'doctor_name': 'Dr. Patel'})
        assert changes == {'doctor_name': {'before': None, 'after': 'Dr. Patel'}}

    def test_none_to_blank_is_no_change(self):
        assert build_field_diff({'notes': None}, {'notes': '   '}) == {}

    def test_effectively_empty_object_vs_null_is_suppressed(self):
        assert build_field_diff({'vision_refraction': None}, {'vision_refraction': EMPTY_REFRACTION}) == {}

    def test_object_with_one_real_leaf_records_full_raw_object(self):
        payload_value = {
            'od': {'axis': 90, 'sphere': -2.0, 'cylinder': None},
            'os': {'axis': None, 'sphere': None, 'cylinder': None},
        }
        changes = build_field_diff({'vision_refraction': None}, {'vision_refraction': payload_value})
        assert changes == {'vision_refraction': {'before': None, 'after': payload_value}}

    def test_false_is_a_real_value(self):
        changes = build_field_diff({'needs_glasses': None}, {'needs_glasses': False})
        assert changes == {'needs_glasses': {'before': None, 'after': False}}

    def test_bool_vs_int_is_a_change(self):
        changes = build_field_diff({'needs_glasses': 1}, {'needs_glasses': True})
        assert 'needs_glasses' in changes


class TestBuildFieldDiffExclusions:

    def test_default_excludes_bookkeeping_fields(self):
        current = {'id': 1, 'created_at': 'x', 'updated_at': 'y'}
        payload = {'id': 2, 'created_at': 'a', 'updated_at': 'b'}
        assert build_field_diff(current, payload) == {}
        assert DEFAULT_EXCLUDE_KEYS == {'id', 'created_at', 'updated_at'}

    def test_extra_exclude_keys_are_added_to_defaults(self):
        current = {'id': 1, 'child_id': 1, 'notes': 'a'}
        payload = {'id': 9, 'child_id': 2, 'notes': 'b'}
        changes = build_field_diff(current, payload, exclude_keys={'child_id'})
        assert list(changes) == ['notes']

    def test_inputs_are_not_mutated(self):
        current = {'notes': 'a'}
        payload = {'notes': '  '}
        build_field_diff(current, payload)
        assert current == {'notes': 'a'}
        assert payload == {'notes': '  '}


class TestShouldFilterChange:

    def test_both_empty(self):
        assert should_filter_change(None, '  ') is True
        assert should_filter_change([], EMPTY_REFRACTION) is True

    def test_one_side_real(self):
        assert should_filter_change(None, 'x') is False
        assert should_filter_change(0, None) is False
