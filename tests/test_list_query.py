import math
from decimal import Decimal
from datetime import date
from enum import Enum

import pytest

from list_query import (
    ConfigurationError, FieldDescriptor, FieldRegistry, Query, ResultPage,
    apply, render_text, SCOPE_ALL, ASCENDING, DESCENDING,
)


ORDER_DESCRIPTORS = [
    FieldDescriptor('id', 'Order ID'),
    FieldDescriptor('status', 'Status'),
    FieldDescriptor('note', 'Note'),
    FieldDescriptor('amount', 'Amount', searchable=False, blank=0),
    FieldDescriptor('tags', 'Tags', comparable=False),
]


def make_orders():
    return [
        {'id': 'O1', 'status': '完了', 'note': 'Rush delivery', 'amount': 300, 'tags': 'a'},
        {'id': 'O2', 'status': '未完了', 'note': '', 'amount': 100, 'tags': 'b'},
        {'id': 'O3', 'status': '完了', 'note': 'rush', 'amount': 200, 'tags': 'c'},
        {'id': 'O4', 'status': '未完了', 'note': None, 'amount': 100, 'tags': 'rush'},
    ]


class TestFiltering:
    def test_empty_keyword_returns_all_records(self):
        records = make_orders()
        result = apply(records, Query(), ORDER_DESCRIPTORS)
        assert result.rows == records
        assert result.total_matched == 4

    def test_whitespace_keyword_is_treated_as_empty(self):
        result = apply(make_orders(), Query(keyword='   '), ORDER_DESCRIPTORS)
        assert result.total_matched == 4

    def test_single_field_scope(self):
        records = [{'id': 'O1', 'status': '完了'}, {'id': 'O2', 'status': '未完了'}]
        descriptors = [FieldDescriptor('id', 'ID'), FieldDescriptor('status', 'Status')]
        result = apply(records, Query(keyword='O2', scope='id'), descriptors)
        assert result.rows == [{'id': 'O2', 'status': '未完了'}]
        assert result.total_matched == 1

    def test_matching_is_case_insensitive(self):
        result = apply(make_orders(), Query(keyword='RUSH', scope='note'), ORDER_DESCRIPTORS)
        assert [r['id'] for r in result.rows] == ['O1', 'O3']

    def test_all_scope_only_inspects_searchable_fields(self):
        # 'amount' is not searchable, so '300' must not match O1 through it
        result = apply(make_orders(), Query(keyword='300'), ORDER_DESCRIPTORS)
        assert result.rows == []
        result = apply(make_orders(), Query(keyword='rush'), ORDER_DESCRIPTORS)
        assert [r['id'] for r in result.rows] == ['O1', 'O3', 'O4']

    def test_every_kept_row_contains_keyword_and_every_dropped_row_does_not(self):
        records = make_orders()
        result = apply(records, Query(keyword='未完了', scope='status'), ORDER_DESCRIPTORS)
        kept_ids = {r['id'] for r in result.rows}
        for record in records:
            assert ('未完了' in record['status']) == (record['id'] in kept_ids)

    def test_none_values_never_match(self):
        records = [{'id': 'A', 'note': None}]
        descriptors = [FieldDescriptor('id', 'ID'), FieldDescriptor('note', 'Note')]
        assert apply(records, Query(keyword='none', scope='note'), descriptors).rows == []

    def test_missing_field_is_treated_as_blank(self):
        records = [{'id': 'A'}]
        descriptors = [FieldDescriptor('id', 'ID'), FieldDescriptor('note', 'Note')]
        assert apply(records, Query(keyword='x', scope='note'), descriptors).rows == []

    def test_numbers_are_matched_on_plain_decimal_text(self):
        records = [{'id': 'A', 'sales': 1234567}, {'id': 'B', 'sales': 2.5}, {'id': 'C', 'sales': 7.0}]
        descriptors = [FieldDescriptor('id', 'ID'), FieldDescriptor('sales', 'Sales', blank=0)]
        assert [r['id'] for r in apply(records, Query(keyword='4567', scope='sales'), descriptors).rows] == ['A']
        assert [r['id'] for r in apply(records, Query(keyword='2.5', scope='sales'), descriptors).rows] == ['B']
        # integral floats render without a trailing '.0'
        assert apply(records, Query(keyword='7.0', scope='sales'), descriptors).rows == []

    def test_input_is_not_mutated(self):
        records = make_orders()
        snapshot = [dict(r) for r in records]
        apply(records, Query(keyword='rush', sort_key='amount', sort_direction=DESCENDING),
              ORDER_DESCRIPTORS, page_size=1, min_rows=5)
        assert records == snapshot
        assert len(records) == 4


class TestRenderText:
    class Status(Enum):
        DONE = '完了'

    def test_render_values(self):
        assert render_text(None) == ''
        assert render_text(12) == '12'
        assert render_text(3.0) == '3'
        assert render_text(0.25) == '0.25'
        assert render_text(0.00001) == '0.00001'
        assert render_text(1.25e-7) == '0.000000125'
        assert render_text(1e16) == '10000000000000000'
        assert render_text(Decimal('1E+3')) == '1000'
        assert render_text(date(2025, 1, 5)) == '2025-01-05'
        assert render_text(self.Status.DONE) == '完了'

    def test_enum_values_are_searchable_and_sortable(self):
        records = [{'status': self.Status.DONE}]
        descriptors = [FieldDescriptor('status', 'Status')]
        result = apply(records, Query(keyword='完了', sort_key='status'), descriptors)
        assert result.total_matched == 1


class TestSorting:
    def test_sort_is_stable_for_equal_keys(self):
        result = apply(make_orders(), Query(sort_key='status'), ORDER_DESCRIPTORS)
        # '完了' < '未完了' lexicographically; ties keep input order
        assert [r['id'] for r in result.rows] == ['O1', 'O3', 'O2', 'O4']

    def test_descending_keeps_ties_in_input_order(self):
        result = apply(make_orders(), Query(sort_key='amount', sort_direction=DESCENDING), ORDER_DESCRIPTORS)
        assert [r['id'] for r in result.rows] == ['O1', 'O3', 'O2', 'O4']

    def test_numbers_sort_numerically(self):
        records = [{'n': 10}, {'n': 9}, {'n': 100}]
        result = apply(records, Query(sort_key='n'), [FieldDescriptor('n', 'N')])
        assert [r['n'] for r in result.rows] == [9, 10, 100]

    def test_none_sorts_first_ascending_and_last_descending(self):
        records = [{'note': 'b'}, {'note': None}, {'note': 'a'}]
        descriptors = [FieldDescriptor('note', 'Note')]
        ascending = apply(records, Query(sort_key='note'), descriptors)
        assert [r['note'] for r in ascending.rows] == [None, 'a', 'b']
        descending = apply(records, Query(sort_key='note', sort_direction=DESCENDING), descriptors)
        assert [r['note'] for r in descending.rows] == ['b', 'a', None]

    def test_mixed_types_sort_numbers_before_text(self):
        records = [{'n': 'x'}, {'n': 2}, {'n': None}, {'n': ''}, {'n': 1.5}, {'n': date(2025, 1, 1)}]
        descriptors = [FieldDescriptor('n', 'N')]
        ascending = apply(records, Query(sort_key='n'), descriptors)
        assert [r['n'] for r in ascending.rows] == [None, 1.5, 2, date(2025, 1, 1), '', 'x']
        descending = apply(records, Query(sort_key='n', sort_direction=DESCENDING), descriptors)
        assert [r['n'] for r in descending.rows] == ['x', '', date(2025, 1, 1), 2, 1.5, None]

    def test_search_keyword_matches_small_floats_in_decimal_form(self):
        records = [{'lead': 0.00001}, {'lead': 2.5}]
        result = apply(records, Query(keyword='0.0000'), [FieldDescriptor('lead', 'Lead')])
        assert result.rows == [{'lead': 0.00001}]

    def test_no_sort_preserves_filtered_order(self):
        records = make_orders()[::-1]
        result = apply(records, Query(), ORDER_DESCRIPTORS)
        assert [r['id'] for r in result.rows] == ['O4', 'O3', 'O2', 'O1']


class TestPagination:
    def test_total_matched_is_independent_of_page_size(self):
        for page_size in (1, 2, 3, 10):
            result = apply(make_orders(), Query(keyword='rush'), ORDER_DESCRIPTORS, page_size=page_size)
            assert result.total_matched == 3
            assert result.pages == math.ceil(3 / page_size)

    def test_concatenated_pages_reproduce_sorted_sequence(self):
        full = apply(make_orders(), Query(sort_key='amount'), ORDER_DESCRIPTORS).rows
        pages = []
        for page in range(2):
            result = apply(make_orders(), Query(sort_key='amount', page=page), ORDER_DESCRIPTORS, page_size=3)
            pages.extend(result.rows)
        assert pages == full

    def test_page_past_the_end_is_empty(self):
        result = apply(make_orders(), Query(page=5), ORDER_DESCRIPTORS, page_size=2)
        assert result.rows == []
        assert result.total_matched == 4
        assert not result.has_next
        assert result.has_prev

    def test_page_flags(self):
        first = apply(make_orders(), Query(page=0), ORDER_DESCRIPTORS, page_size=2)
        assert first.has_next and not first.has_prev
        last = apply(make_orders(), Query(page=1), ORDER_DESCRIPTORS, page_size=2)
        assert last.has_prev and not last.has_next

    def test_unpaginated_result_has_one_page(self):
        assert apply(make_orders(), Query(), ORDER_DESCRIPTORS).pages == 1
        assert ResultPage([], 0).pages == 0


class TestPadding:
    def test_padding_appends_blank_rows_after_real_rows(self):
        result = apply(make_orders(), Query(keyword='O2', scope='id'), ORDER_DESCRIPTORS, page_size=15, min_rows=4)
        assert len(result.rows) == 4
        assert result.rows[0]['id'] == 'O2'
        blank = {'id': '', 'status': '', 'note': '', 'amount': 0, 'tags': ''}
        assert result.rows[1:] == [blank, blank, blank]
        assert result.total_matched == 1

    def test_padding_does_not_shorten_full_pages(self):
        result = apply(make_orders(), Query(), ORDER_DESCRIPTORS, min_rows=2)
        assert len(result.rows) == 4
        assert result.total_matched == 4

    def test_padding_an_empty_result(self):
        result = apply([], Query(), ORDER_DESCRIPTORS, page_size=5, min_rows=3)
        assert len(result.rows) == 3
        assert result.total_matched == 0

    def test_padded_rows_are_independent_dicts(self):
        result = apply([], Query(), ORDER_DESCRIPTORS, min_rows=2)
        result.rows[0]['id'] = 'changed'
        assert result.rows[1]['id'] == ''


class TestConfigurationErrors:
    def test_unknown_scope(self):
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(keyword='x', scope='foo'), ORDER_DESCRIPTORS)

    def test_unknown_scope_fails_even_with_empty_keyword(self):
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(scope='foo'), ORDER_DESCRIPTORS)

    def test_scope_on_non_searchable_field(self):
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(keyword='1', scope='amount'), ORDER_DESCRIPTORS)

    def test_sort_on_unknown_field(self):
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(sort_key='foo'), ORDER_DESCRIPTORS)

    def test_sort_on_non_comparable_field(self):
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(sort_key='tags'), ORDER_DESCRIPTORS)

    def test_invalid_direction_and_page(self):
        with pytest.raises(ConfigurationError):
            Query(sort_direction='up')
        with pytest.raises(ConfigurationError):
            Query(page=-1)

    def test_invalid_page_size_and_min_rows(self):
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(), ORDER_DESCRIPTORS, page_size=0)
        with pytest.raises(ConfigurationError):
            apply(make_orders(), Query(), ORDER_DESCRIPTORS, min_rows=-1)

    def test_registry_rejects_duplicates_reserved_and_empty(self):
        with pytest.raises(ConfigurationError):
            FieldRegistry([FieldDescriptor('id', 'ID'), FieldDescriptor('id', 'Again')])
        with pytest.raises(ConfigurationError):
            FieldRegistry([FieldDescriptor(SCOPE_ALL, 'All')])
        with pytest.raises(ConfigurationError):
            FieldRegistry([])


class TestQuery:
    def test_idempotent(self):
        records = make_orders()
        query = Query(keyword='rush', sort_key='amount', sort_direction=DESCENDING)
        first = apply(records, query, ORDER_DESCRIPTORS, page_size=2, min_rows=3)
        second = apply(records, query, ORDER_DESCRIPTORS, page_size=2, min_rows=3)
        assert first.rows == second.rows
        assert first.total_matched == second.total_matched

    def test_sorted_by_toggles_direction(self):
        query = Query(keyword='x')
        by_id = query.sorted_by('id')
        assert (by_id.sort_key, by_id.sort_direction) == ('id', ASCENDING)
        again = by_id.sorted_by('id')
        assert (again.sort_key, again.sort_direction) == ('id', DESCENDING)
        assert again.sorted_by('id').sort_direction == ASCENDING
        assert again.sorted_by('status').sort_direction == ASCENDING
        assert again.keyword == 'x'
        assert query.sort_key is None

    def test_equality(self):
        assert Query(keyword='a', sort_key='id') == Query(keyword='a', sort_key='id')
        assert Query(keyword='a') != Query(keyword='b')

    def test_search_options(self):
        options = FieldRegistry(ORDER_DESCRIPTORS).search_options()
        assert options[0]['value'] == SCOPE_ALL
        assert [o['value'] for o in options[1:]] == ['id', 'status', 'note', 'tags']
