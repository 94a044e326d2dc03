# -*- coding: utf-8 -*-
"""
Filtering, sorting and pagination shared by every list endpoint.

Records are plain dicts keyed by field name. Each list type describes its
fields once with FieldDescriptor entries; ``apply`` checks a Query against
them and returns a new ResultPage. The input records are never modified.
"""
import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

SCOPE_ALL = 'all'
SCOPE_ALL_LABEL = 'All fields'
ASCENDING = 'asc'
DESCENDING = 'desc'
SORT_DIRECTIONS = (ASCENDING, DESCENDING)


class ConfigurationError(Exception):
    """A query or field set refers to a field it is not allowed to use."""


class FieldDescriptor:
    """Describes one field of a list: how it is labelled, searched and sorted."""

    def __init__(self, key, label, comparable=True, searchable=True, blank=''):
        self.key = key
        self.label = label
        self.comparable = comparable
        self.searchable = searchable
        self.blank = blank

    def __repr__(self):
        return f'<FieldDescriptor {self.key}>'


class FieldRegistry:
    """Validated, ordered set of FieldDescriptors for one list type."""

    def __init__(self, descriptors):
        self._fields = {}
        for descriptor in descriptors:
            if descriptor.key == SCOPE_ALL:
                raise ConfigurationError(f"'{SCOPE_ALL}' is reserved and cannot be used as a field key")
            if descriptor.key in self._fields:
                raise ConfigurationError(f"Duplicate field key: '{descriptor.key}'")
            self._fields[descriptor.key] = descriptor
        if not self._fields:
            raise ConfigurationError('A field registry needs at least one field')

    def __iter__(self):
        return iter(self._fields.values())

    def __len__(self):
        return len(self._fields)

    def __contains__(self, key):
        return key in self._fields

    def keys(self):
        return list(self._fields)

    def get(self, key):
        try:
            return self._fields[key]
        except KeyError:
            raise ConfigurationError(f"Unknown field: '{key}'") from None

    def search_keys(self, scope):
        """Returns the keys the keyword is matched against for ``scope``."""
        if scope == SCOPE_ALL:
            return [d.key for d in self if d.searchable]
        descriptor = self.get(scope)
        if not descriptor.searchable:
            raise ConfigurationError(f"Field '{scope}' is not searchable")
        return [descriptor.key]

    def sort_descriptor(self, key):
        descriptor = self.get(key)
        if not descriptor.comparable:
            raise ConfigurationError(f"Field '{key}' cannot be sorted")
        return descriptor

    def blank_record(self):
        return {d.key: d.blank for d in self}

    def search_options(self):
        """Options for a search-field dropdown, 'all' first."""
        options = [{'value': SCOPE_ALL, 'label': SCOPE_ALL_LABEL}]
        options.extend({'value': d.key, 'label': d.label} for d in self if d.searchable)
        return options


class Query:
    """The caller's current keyword, search scope, sort and page (zero-based)."""

    def __init__(self, keyword='', scope=SCOPE_ALL, sort_key=None, sort_direction=ASCENDING, page=0):
        if sort_direction not in SORT_DIRECTIONS:
            raise ConfigurationError(f"Invalid sort direction: '{sort_direction}'")
        if page < 0:
            raise ConfigurationError(f'Page index must not be negative, got {page}')
        self.keyword = keyword or ''
        self.scope = scope or SCOPE_ALL
        self.sort_key = sort_key or None
        self.sort_direction = sort_direction
        self.page = page

    def sorted_by(self, key):
        """Column-header click: ascending first, descending on a repeat click."""
        direction = ASCENDING
        if self.sort_key == key and self.sort_direction == ASCENDING:
            direction = DESCENDING
        return Query(self.keyword, self.scope, key, direction, self.page)

    def __eq__(self, other):
        if not isinstance(other, Query):
            return NotImplemented
        return self._state() == other._state()

    def __hash__(self):
        return hash(self._state())

    def _state(self):
        return (self.keyword, self.scope, self.sort_key, self.sort_direction, self.page)

    def __repr__(self):
        return (f'<Query keyword={self.keyword!r} scope={self.scope} '
                f'sort={self.sort_key}:{self.sort_direction} page={self.page}>')


class ResultPage:
    """Rows to display plus the counts a pagination control needs."""

    def __init__(self, rows, total_matched, page=0, page_size=None):
        self.rows = rows
        self.total_matched = total_matched
        self.page = page
        self.page_size = page_size

    @property
    def pages(self):
        if not self.total_matched:
            return 0
        if not self.page_size:
            return 1
        return math.ceil(self.total_matched / self.page_size)

    @property
    def has_prev(self):
        return self.page > 0

    @property
    def has_next(self):
        return self.page + 1 < self.pages

    def __repr__(self):
        return f'<ResultPage page={self.page} rows={len(self.rows)} total={self.total_matched}>'


def render_text(value):
    """Text a keyword is matched against: base-10 numbers, ISO dates, '' for None."""
    if value is None:
        return ''
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        # fixed-point text, never exponent notation
        return format(Decimal(repr(value)), 'f')
    if isinstance(value, Decimal):
        return format(value, 'f')
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _sort_value(value):
    if isinstance(value, Enum):
        value = value.value
    # None sorts ahead of every real value, then numbers, other types, text
    if value is None:
        return (0,)
    if isinstance(value, (int, float, Decimal)):
        return (1, '', value)
    if isinstance(value, str):
        return (3, '', value)
    return (2, type(value).__name__, value)


def _check_int(name, value, minimum):
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(f'{name} must be an integer >= {minimum}, got {value!r}')


def apply(records, query, descriptors, page_size=None, min_rows=None):
    """Filters, sorts, paginates and pads ``records`` according to ``query``.

    ``descriptors`` is a FieldRegistry or a sequence of FieldDescriptor. All
    field references are validated up front, so a ConfigurationError means
    nothing was computed.
    """
    registry = descriptors if isinstance(descriptors, FieldRegistry) else FieldRegistry(descriptors)
    search_keys = registry.search_keys(query.scope)
    sort_descriptor = registry.sort_descriptor(query.sort_key) if query.sort_key else None
    _check_int('page_size', page_size, 1)
    _check_int('min_rows', min_rows, 0)

    keyword = query.keyword.lower()
    if keyword.strip():
        matched = [
            record for record in records
            if any(keyword in render_text(record.get(key)).lower() for key in search_keys)
        ]
    else:
        matched = list(records)

    if sort_descriptor is not None:
        key = sort_descriptor.key
        matched.sort(key=lambda record: _sort_value(record.get(key)),
                     reverse=query.sort_direction == DESCENDING)

    total_matched = len(matched)
    if page_size:
        start = query.page * page_size
        rows = matched[start:start + page_size]
    else:
        rows = matched

    if min_rows and len(rows) < min_rows:
        rows.extend(registry.blank_record() for _ in range(min_rows - len(rows)))

    return ResultPage(rows, total_matched, page=query.page, page_size=page_size)
